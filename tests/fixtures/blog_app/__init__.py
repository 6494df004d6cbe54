"""Small application used by the runner tests: one model, one router."""

from datetime import datetime

from fastapi import FastAPI
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from blog_app.controllers import users


class Base(DeclarativeBase):
    pass


class ApplicationRecord(Base):
    __abstract__ = True


class User(ApplicationRecord):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String)
    last_name: Mapped[str] = mapped_column(String)
    age: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


def full_name(user: User) -> str:
    return f"{user.first_name} {user.last_name}"


app = FastAPI()
app.include_router(users.router)
