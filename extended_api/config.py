from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class Config:
    secret_key: str = "change-me"
    database_url: str = "sqlite:///dev.db"
    api_prefix: str = "/extended_api"
    api_formats: list[str] = field(default_factory=lambda: ["json", "xml"])  # structured formats only
    api_header: str = "X-Extended-Api"
    metrics_backend: str = "noop"
    depending_custom_fields: bool = False

    @classmethod
    def from_env(cls) -> Config:
        formats = os.getenv("EXTENDED_API_FORMATS", "json,xml")
        prefix = os.getenv("EXTENDED_API_PREFIX", "/extended_api").strip() or "/extended_api"
        return cls(
            secret_key=os.getenv("SECRET_KEY", "change-me"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///dev.db"),
            api_prefix="/" + prefix.strip("/"),
            api_formats=[f.strip().lower() for f in formats.split(",") if f.strip()],
            api_header=os.getenv("EXTENDED_API_HEADER", "X-Extended-Api"),
            metrics_backend=os.getenv("METRICS_BACKEND", "noop"),
            depending_custom_fields=os.getenv("DEPENDING_CUSTOM_FIELDS", "0").lower() in ("1", "true", "yes"),
        )

    def override(self, d: dict):
        for k, v in d.items():
            if hasattr(self, k):
                setattr(self, k, v)

    def to_flask_dict(self):
        return {
            "SECRET_KEY": self.secret_key,
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "EXTENDED_API_PREFIX": self.api_prefix,
            "EXTENDED_API_FORMATS": tuple(self.api_formats),
            "EXTENDED_API_HEADER": self.api_header,
            "METRICS_BACKEND": self.metrics_backend,
            "DEPENDING_CUSTOM_FIELDS": self.depending_custom_fields,
            "JSON_SORT_KEYS": False,
        }
