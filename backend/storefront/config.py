# backend/storefront/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Storefront identity used in notification templates
    STORE_NAME = os.environ.get("STORE_NAME", "Radha Sarees")
    ORDER_TRACKING_URL = os.environ.get("ORDER_TRACKING_URL", "https://radhasarees.com/orders/{orderId}")
    CURRENCY = os.environ.get("CURRENCY", "INR")

    # Bearer token required by admin routes (order status, settings, test sends)
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN", "")

    # Gateway credentials are process-wide and never leave the server.
    RAZORPAY_KEY_ID = os.environ.get("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET = os.environ.get("RAZORPAY_KEY_SECRET", "")
    RAZORPAY_API_BASE = os.environ.get("RAZORPAY_API_BASE", "https://api.razorpay.com/v1")

    PHONEPE_MERCHANT_ID = os.environ.get("PHONEPE_MERCHANT_ID", "")
    PHONEPE_SALT_KEY = os.environ.get("PHONEPE_SALT_KEY", "")
    PHONEPE_SALT_INDEX = os.environ.get("PHONEPE_SALT_INDEX", "1")
    PHONEPE_API_BASE = os.environ.get("PHONEPE_API_BASE", "https://api.phonepe.com/apis/hermes")
    PHONEPE_REDIRECT_URL = os.environ.get("PHONEPE_REDIRECT_URL", "")

    # Timeouts (seconds)
    GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "10"))
    NOTIFICATION_TIMEOUT_SECONDS = float(os.environ.get("NOTIFICATION_TIMEOUT_SECONDS", "8"))
    PAYMENT_COMPLETION_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_COMPLETION_TIMEOUT_SECONDS", "5"))
    CHECKOUT_SESSION_TTL_SECONDS = int(os.environ.get("CHECKOUT_SESSION_TTL_SECONDS", "3600"))

    # Optional httpx transport shared by outbound clients (tests plug in httpx.MockTransport)
    HTTP_TRANSPORT = None
