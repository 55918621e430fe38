from sqlalchemy import Column, Integer, Text
from sqlalchemy.orm import relationship

from app.database import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    display_order = Column(Integer, nullable=False, default=0)

    products = relationship("Product", back_populates="category")
