"""Shared AWS helpers for service clients."""

from __future__ import annotations

from typing import Any

import boto3

from drill_eval.config.settings import S3Config


def create_boto3_client(
    service_name: str,
    config: S3Config,
    *,
    region_name: str | None = None,
    aws_access_key_id: str | None = None,
    aws_secret_access_key: str | None = None,
) -> Any:
    """Instantiate a boto3 client, preferring explicit keys over configured ones."""

    client_kwargs: dict[str, Any] = {"region_name": region_name or config.region}
    if aws_access_key_id and aws_secret_access_key:
        client_kwargs["aws_access_key_id"] = aws_access_key_id
        client_kwargs["aws_secret_access_key"] = aws_secret_access_key
    elif config.access_key and config.secret_key:
        client_kwargs["aws_access_key_id"] = config.access_key
        client_kwargs["aws_secret_access_key"] = config.secret_key
    return boto3.client(service_name, **client_kwargs)


__all__ = ["create_boto3_client"]
