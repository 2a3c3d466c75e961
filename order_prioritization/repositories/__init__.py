"""
Repositories package
"""
from order_prioritization.repositories.order_repository import (
    OrderRepository,
    SqlAlchemyOrderRepository
)
from order_prioritization.repositories.memory import InMemoryOrderRepository

__all__ = ["OrderRepository", "SqlAlchemyOrderRepository", "InMemoryOrderRepository"]
