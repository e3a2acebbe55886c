"""
Chart Selectors
Derives which chart elements a report must contain and waits for them in
bounded concurrent batches.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence

from app.schemas.report import ReportLevel
from app.workers.base import ChartLoadError

logger = logging.getLogger(__name__)


DEFAULT_CHART_NAMES = [
    "Age & Gender Split Bar Chart",
    "Age & Gender Split Pie Chart",
    "Best Time Chart",
    "Device Split Chart",
]


def scope_value(entry: Any) -> Optional[str]:
    """Campaign/location entries arrive as plain ids or {"label": ..., "value": ...} options."""
    if isinstance(entry, dict):
        value = entry.get("value")
        return None if value is None else str(value)
    if entry is None:
        return None
    return str(entry)


def derive_chart_selectors(
    level: Optional[str],
    campaign_ids: Iterable[Any] = (),
    location_ids: Iterable[Any] = (),
    chart_names: Optional[Sequence[str]] = None,
) -> List[str]:
    """
    Chart element ids to wait for.

    Location and campaign level reports render one copy of every chart per
    scope entry, with element id "<chart name> <scope value>". Any other
    level renders the chart names once.
    """
    names = list(chart_names) if chart_names else list(DEFAULT_CHART_NAMES)

    if level == ReportLevel.LOCATION:
        scopes = location_ids or []
    elif level == ReportLevel.CAMPAIGN:
        scopes = campaign_ids or []
    else:
        return names

    selectors = []
    for entry in scopes:
        value = scope_value(entry)
        if value is None:
            logger.warning(f"[Charts] Skipping {level} entry without a value: {entry!r}")
            continue
        for name in names:
            selectors.append(f"{name} {value}")
    return selectors


def chart_css(element_id: str) -> str:
    """Attribute selector matching an element id that may contain spaces or '&'."""
    escaped = element_id.replace("\\", "\\\\").replace('"', '\\"')
    return f'[id="{escaped}"]'


def chunked(items: Sequence[str], size: int) -> List[List[str]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


@dataclass
class ChartWaitResult:
    """Outcome of waiting for a set of charts."""
    loaded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.loaded) + len(self.failed)

    @property
    def success_ratio(self) -> float:
        if not self.total:
            return 1.0
        return len(self.loaded) / self.total


async def wait_for_charts(
    wait_for: Callable[[str], Awaitable[Any]],
    selectors: Sequence[str],
    batch_size: int = 3,
    batch_pause: float = 1.0,
    threshold: float = 0.7,
) -> ChartWaitResult:
    """
    Wait for every selector, batch_size at a time.

    A failing wait never cancels its siblings: each outcome is recorded and
    the next batch starts only once the whole current batch has settled.

    Raises:
        ChartLoadError: if the loaded fraction is below threshold
    """
    result = ChartWaitResult()
    batches = chunked(list(selectors), batch_size)
    logger.info(f"[Charts] Waiting for {len(selectors)} charts in {len(batches)} batches")

    for index, batch in enumerate(batches):
        outcomes = await asyncio.gather(
            *(wait_for(selector) for selector in batch),
            return_exceptions=True,
        )
        for selector, outcome in zip(batch, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"[Charts] Failed to load: {selector} - {outcome}")
                result.failed.append(selector)
            else:
                logger.debug(f"[Charts] Loaded: {selector}")
                result.loaded.append(selector)

        if index < len(batches) - 1 and batch_pause > 0:
            await asyncio.sleep(batch_pause)

    logger.info(f"[Charts] Charts loaded: {len(result.loaded)}/{result.total}")

    if result.success_ratio < threshold:
        raise ChartLoadError(
            f"Too many charts failed to load: {len(result.failed)}/{result.total}",
            failed=result.failed,
            loaded=result.loaded,
        )

    return result
