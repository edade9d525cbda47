# backend/smartbill/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/smartbill.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///smartbill.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Cache: "redis" in deployments, "memory" for tests and single-process dev
    CACHE_BACKEND = os.environ.get("CACHE_BACKEND", "redis")
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    CACHE_SOCKET_TIMEOUT = float(os.environ.get("CACHE_SOCKET_TIMEOUT", "0.5"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    BILL_NUMBER_PREFIX = os.environ.get("BILL_NUMBER_PREFIX", "BILL-")
    DEFAULT_TAX_PERCENTAGE = int(os.environ.get("DEFAULT_TAX_PERCENTAGE", "5"))
    BILL_LIST_PAGE_SIZE = int(os.environ.get("BILL_LIST_PAGE_SIZE", "20"))
