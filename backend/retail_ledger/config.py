# backend/retail_ledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retail_ledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///retail_ledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fraction applied to (subtotal - discount); "0.16" means 16%
    TAX_RATE = os.environ.get("TAX_RATE", "0")

    QUOTATION_VALIDITY_DAYS = int(os.environ.get("QUOTATION_VALIDITY_DAYS", "30"))
    CREDIT_SALE_DUE_DAYS = int(os.environ.get("CREDIT_SALE_DUE_DAYS", "30"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
