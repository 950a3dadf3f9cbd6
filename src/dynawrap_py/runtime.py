from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, cast

import boto3
from botocore.config import Config

from .errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwsCallMetric:
    service: str
    operation: str
    seconds: float
    ok: bool


@dataclass(frozen=True)
class ClientSettings:
    region: str | None = None
    endpoint_url: str | None = None
    connect_timeout: float = 1.0
    read_timeout: float = 3.0
    max_attempts: int = 3

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> ClientSettings:
        def number(name: str, default: float) -> float:
            raw = (environ.get(name) or "").strip()
            if not raw:
                return default
            try:
                return float(raw)
            except ValueError as err:
                raise ValidationError(f"{name} must be a number: {raw!r}") from err

        return cls(
            region=(environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION") or "").strip() or None,
            endpoint_url=(environ.get("DYNAMODB_ENDPOINT") or "").strip() or None,
            connect_timeout=number("DYNAWRAP_CONNECT_TIMEOUT", cls.connect_timeout),
            read_timeout=number("DYNAWRAP_READ_TIMEOUT", cls.read_timeout),
            max_attempts=int(number("DYNAWRAP_MAX_ATTEMPTS", cls.max_attempts)),
        )


def create_boto3_config(
    *,
    connect_timeout: float = 1.0,
    read_timeout: float = 3.0,
    max_attempts: int = 3,
) -> Config:
    return Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": max_attempts, "mode": "adaptive"},
    )


class _InstrumentedClient:
    def __init__(self, client: Any, service: str, on_call: Callable[[AwsCallMetric], None]) -> None:
        self._client = client
        self._service = service
        self._on_call = on_call

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr

        def wrapped(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            ok = False
            try:
                out = attr(*args, **kwargs)
                ok = True
                return out
            finally:
                self._report(name, time.monotonic() - start, ok)

        return wrapped

    def _report(self, operation: str, seconds: float, ok: bool) -> None:
        self._on_call(AwsCallMetric(service=self._service, operation=operation, seconds=seconds, ok=ok))


def instrument_boto3_client(
    client: Any,
    *,
    service: str,
    on_call: Callable[[AwsCallMetric], None],
) -> Any:
    return _InstrumentedClient(client, service, on_call)


def log_call_metric(metric: AwsCallMetric) -> None:
    logger.debug(
        "%s.%s took %.3fs (ok=%s)",
        metric.service,
        metric.operation,
        metric.seconds,
        metric.ok,
    )


def get_dynamodb_client(
    settings: ClientSettings | None = None,
    *,
    session: Any | None = None,
    metrics: Callable[[AwsCallMetric], None] | None = None,
) -> Any:
    settings = settings or ClientSettings.from_env()
    config = create_boto3_config(
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        max_attempts=settings.max_attempts,
    )

    sess = session or boto3.session.Session(region_name=settings.region)
    kwargs: dict[str, Any] = {"region_name": settings.region, "config": config}
    if settings.endpoint_url:
        kwargs["endpoint_url"] = settings.endpoint_url
    client = cast(Any, sess).client("dynamodb", **kwargs)
    if metrics is not None:
        client = instrument_boto3_client(client, service="dynamodb", on_call=metrics)
    return client
