"""Application that prints to stdout and leaves a thread running."""

import threading

from sqlalchemy import Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

print("booting " * 3000)

_stop = threading.Event()
threading.Thread(target=_stop.wait, name="noisy-app-poller").start()


class Base(DeclarativeBase):
    pass


class Widget(Base):
    __tablename__ = "widgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    label: Mapped[str] = mapped_column(String)
