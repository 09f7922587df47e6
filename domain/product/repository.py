"""
产品仓储接口 - 只读参考数据
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Product


class ProductRepository(ABC):

    @abstractmethod
    async def get_by_polar_id(self, polar_product_id: str) -> Optional[Product]:
        """根据 Polar 产品ID获取产品"""
        pass

    @abstractmethod
    async def list_active(self) -> List[Product]:
        """获取上架产品（按价格升序）"""
        pass

    @abstractmethod
    async def create(self, product: Product) -> Product:
        """创建产品（仅用于初始化目录与测试）"""
        pass
