"""
AWS Cost Explorer adapter.

Answers the billing query "total cost grouped by service for a date range".
"""

from datetime import date
from typing import Any, Dict, List, Optional

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from app.shared.adapters.aws_utils import (
    COST_EXPLORER_REGION,
    build_boto_config,
    get_boto_session,
)
from app.shared.adapters.base import BillingAdapter
from app.shared.core.exceptions import AdapterError

logger = structlog.get_logger()


class CostExplorerAdapter(BillingAdapter):
    def __init__(self, session: Optional[aioboto3.Session] = None):
        self.session = session or get_boto_session()

    async def get_cost_and_usage(
        self, start_date: date, end_date: date
    ) -> List[Dict[str, Any]]:
        self._clear_last_error()
        try:
            async with self.session.client(
                "ce", region_name=COST_EXPLORER_REGION, config=build_boto_config()
            ) as ce:
                response = await ce.get_cost_and_usage(
                    TimePeriod={
                        "Start": start_date.isoformat(),
                        "End": end_date.isoformat(),
                    },
                    Granularity="MONTHLY",
                    Metrics=["BlendedCost"],
                    GroupBy=[{"Type": "DIMENSION", "Key": "SERVICE"}],
                )
        except (ClientError, BotoCoreError) as e:
            self._set_last_error_from_exception(e, prefix="cost_explorer")
            logger.warning(
                "cost_explorer_query_failed",
                start=start_date.isoformat(),
                end=end_date.isoformat(),
                error=str(e),
            )
            raise AdapterError(
                f"Cost Explorer query failed: {e}",
                details={"start": start_date.isoformat(), "end": end_date.isoformat()},
            ) from e

        return list(response.get("ResultsByTime") or [])
