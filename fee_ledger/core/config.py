# fee_ledger/core/config.py

import json
import os
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Optional, Tuple

import boto3
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)


#
# =====================================================
#  SECRET FETCH (DB credentials)
# =====================================================
#


@lru_cache(maxsize=32)
def cached_secret_values(secret_id: str | None, region: str | None) -> dict:
    """
    Load a secret from AWS Secrets Manager.
    Returns {} if secret_id is not set or is an empty string.

    Because of @lru_cache, each unique (secret_id, region) pair is fetched
    only once per application start.
    """
    if not secret_id or secret_id.strip() == "":
        return {}

    region = region or os.getenv("AWS_REGION", "us-east-1")
    logger.info("Loading secret", secret_id=secret_id, region=region)

    client = boto3.client("secretsmanager", region_name=region)
    resp = client.get_secret_value(SecretId=secret_id)
    data = json.loads(resp["SecretString"])

    logger.info("Loaded secret from Secrets Manager", secret_id=secret_id)
    return data


def _parse_split(value: str) -> Tuple[Decimal, ...]:
    """Parse a comma separated percentage split such as '33,33,34'."""
    try:
        weights = tuple(Decimal(part.strip()) for part in value.split(",") if part.strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid installment split '{value}'") from e
    if not weights:
        raise ValueError("Installment split must not be empty")
    if any(w <= 0 for w in weights):
        raise ValueError(f"Installment split weights must be positive: '{value}'")
    if sum(weights) != Decimal("100"):
        raise ValueError(f"Installment split must add up to 100: '{value}'")
    return weights


#
# =====================================================
#                    SETTINGS CLASS
# =====================================================
#


class Settings(BaseSettings):
    """
    Application Settings
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "development"
    allowed_cors_urls: str = "*"
    log_level: str = "INFO"

    # AWS + secret id for the database credentials
    aws_region: Optional[str] = None
    db_secret_id: Optional[str] = None  # e.g. school/staging/db

    # Full URL override, e.g. sqlite:// for tests
    database_url: Optional[str] = None

    db_host: str = "localhost"
    db_user: str = "root"
    db_password: str = ""
    db_database: str = "fee_ledger"
    db_port: int = 3306
    db_echo: bool = False

    # Ledger policy
    tuition_term_split: str = "33,33,34"
    transport_term_split: str = "50,50"
    money_tolerance: Decimal = Decimal("0.01")
    # Term N is payable once term N-1 is settled, or when it is already partly paid
    enforce_term_order: bool = True
    # Collection desk policy: settle the book fee before any tuition or transport term
    require_book_fee_first: bool = False

    # Listing
    default_page_size: int = 20
    max_page_size: int = 200

    @field_validator("tuition_term_split", "transport_term_split")
    @classmethod
    def validate_split(cls, value: str) -> str:
        _parse_split(value)
        return value

    @property
    def tuition_split_weights(self) -> Tuple[Decimal, ...]:
        """Percentages used to split the net tuition fee into three terms."""
        weights = _parse_split(self.tuition_term_split)
        if len(weights) != 3:
            raise ValueError("Tuition fee split must have exactly 3 terms")
        return weights

    @property
    def transport_split_weights(self) -> Tuple[Decimal, ...]:
        """Percentages used to split the net transport fee into two terms."""
        weights = _parse_split(self.transport_term_split)
        if len(weights) != 2:
            raise ValueError("Transport fee split must have exactly 2 terms")
        return weights

    #
    # ---------------------------
    #  DB ACCESS PROPERTIES
    # ---------------------------
    #
    @property
    def _db_tuple(self):
        """
        Resolve DB connection details:
        - If db_secret_id is set → use secret (DB_HOST, DB_USER, DB_PASSWORD, DB_DATABASE, DB_PORT)
        - Else → use .env values
        """
        data = cached_secret_values(self.db_secret_id, self.aws_region)

        if data:
            logger.info("DB config source: Secrets Manager", secret_id=self.db_secret_id)
        else:
            logger.info("DB config source: .env / environment variables")

        host = data.get("DB_HOST") or self.db_host
        user = data.get("DB_USER") or self.db_user
        password = data.get("DB_PASSWORD") or self.db_password
        database = data.get("DB_DATABASE") or self.db_database
        port = int(data.get("DB_PORT") or self.db_port)

        return host, user, password, database, port

    @property
    def db_url(self) -> str:
        """Construct the synchronous database URL."""
        if self.database_url:
            return self.database_url
        host, user, password, database, port = self._db_tuple
        return f"mysql+pymysql://{user}:{password}@{host}:{port}/{database}"


#
# Instantiate settings
#
settings = Settings()
