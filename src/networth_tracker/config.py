"""Runtime settings read from environment variables."""

import os
from pathlib import Path

from pydantic import BaseModel, Field

from networth_tracker.core.errors import ValidationError


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


class Settings(BaseModel):
    """
    Settings for the CLI and service wiring.

    Attributes
    ----------
    user_id : str
        Principal every command acts for
    db_path : Path | None
        SQLite database file; an in-memory store is used if None
    moralis_api_key : str | None
        Wallet-data provider key; wallet refreshes are unavailable without it
    plaid_client_id : str | None
        Brokerage-link client id
    plaid_secret : str | None
        Brokerage-link secret
    plaid_env : str
        Brokerage-link environment ('sandbox' or 'production')
    coingecko_base_url : str
        Spot-price API base URL
    price_cache_ttl : float
        Seconds a fetched price stays cached
    taxonomy_path : Path | None
        Override for the packaged taxonomy.yaml
    log_level : str
        Root log level
    log_json : bool
        Emit single-line JSON logs instead of rich console output

    """

    user_id: str = "default"
    db_path: Path | None = None
    moralis_api_key: str | None = Field(default=None, repr=False)
    plaid_client_id: str | None = None
    plaid_secret: str | None = Field(default=None, repr=False)
    plaid_env: str = "sandbox"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    price_cache_ttl: float = 60.0
    taxonomy_path: Path | None = None
    log_level: str = "WARNING"
    log_json: bool = False

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Parameters
        ----------
        environ : dict[str, str] | None
            Variables to read, defaults to ``os.environ``

        Returns
        -------
        Settings
            Parsed settings; unset variables keep their defaults

        Raises
        ------
        ValidationError
            If PRICE_CACHE_TTL is not a number

        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {
            "user_id": env.get("NETWORTH_USER_ID"),
            "db_path": env.get("NETWORTH_DB_PATH"),
            "moralis_api_key": env.get("MORALIS_API_KEY"),
            "plaid_client_id": env.get("PLAID_CLIENT_ID"),
            "plaid_secret": env.get("PLAID_SECRET"),
            "plaid_env": env.get("PLAID_ENV"),
            "coingecko_base_url": env.get("COINGECKO_BASE_URL"),
            "taxonomy_path": env.get("NETWORTH_TAXONOMY_PATH"),
            "log_level": (env.get("LOG_LEVEL") or "").upper() or None,
        }
        ttl = env.get("PRICE_CACHE_TTL")
        if ttl:
            try:
                values["price_cache_ttl"] = float(ttl)
            except ValueError as e:
                msg = f"PRICE_CACHE_TTL is not a number: {ttl!r}"
                raise ValidationError(msg) from e
        values["log_json"] = _flag(env.get("LOG_JSON"))

        return cls(**{key: value for key, value in values.items() if value not in (None, "")})

    @property
    def plaid_configured(self) -> bool:
        return bool(self.plaid_client_id and self.plaid_secret)
