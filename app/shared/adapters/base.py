from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from app.shared.core.exceptions import AdapterError


class BaseAdapter(ABC):
    """
    Common error bookkeeping for the budget governor's backend adapters.
    """
    last_error: Optional[str] = None

    def _clear_last_error(self) -> None:
        """Reset adapter error state before a new operation."""
        self.last_error = None

    def _set_last_error(self, message: str) -> None:
        """Store a sanitized adapter error message suitable for operator-facing responses."""
        self.last_error = AdapterError(message).message

    def _set_last_error_from_exception(
        self, exc: Exception, *, prefix: str | None = None
    ) -> None:
        error_text = str(exc)
        message = f"{prefix}: {error_text}" if prefix else error_text
        self._set_last_error(message)


class BillingAdapter(BaseAdapter):
    """Billing query: total cost grouped by service for a date range."""

    @abstractmethod
    async def get_cost_and_usage(
        self, start_date: date, end_date: date
    ) -> List[Dict[str, Any]]:
        """
        Return the raw result buckets (Cost Explorer `ResultsByTime` shape),
        one per period, each holding per-service `Groups`.
        """
        raise NotImplementedError()


class MetricsAdapter(BaseAdapter):
    """Time-series read/write against the monitoring backend."""

    @abstractmethod
    async def put_metric_point(
        self,
        namespace: str,
        metric_name: str,
        value: float,
        *,
        timestamp: datetime,
        dimensions: Optional[Dict[str, str]] = None,
    ) -> None:
        raise NotImplementedError()

    @abstractmethod
    async def get_metric_statistics(
        self,
        namespace: str,
        metric_name: str,
        *,
        start_time: datetime,
        end_time: datetime,
        period_seconds: int,
        statistic: str,
    ) -> List[Dict[str, Any]]:
        """Return datapoints as dicts carrying `Timestamp` and the statistic key."""
        raise NotImplementedError()


class AlarmAdapter(BaseAdapter):
    """Threshold alarm management."""

    @abstractmethod
    async def put_metric_alarm(self, **alarm: Any) -> None:
        """Create or update one alarm; keyword names follow PutMetricAlarm."""
        raise NotImplementedError()

    @abstractmethod
    async def list_alarm_names(self, prefix: str) -> List[str]:
        raise NotImplementedError()

    @abstractmethod
    async def delete_alarms(self, alarm_names: Sequence[str]) -> None:
        raise NotImplementedError()


class NotificationAdapter(BaseAdapter):
    """Publishes a subject + body message to a named channel."""

    @abstractmethod
    async def publish(self, channel: str, subject: str, message: str) -> None:
        raise NotImplementedError()
