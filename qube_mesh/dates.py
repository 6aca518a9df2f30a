"""Date-selection sub-protocol shared by termination and extension flows.

The date widget is an Angular Material datepicker wrapped in the app's own
input component. Opening it may or may not produce a calendar overlay; when it
does, the date is picked period -> year -> month -> day, otherwise it is typed
into the underlying input. Either way the widget must end up showing a
recognised rendering of the date.
"""

from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass
from typing import List, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator

from qube_mesh.errors import DateFormatError, DateSelectionError
from qube_mesh.resolver import ElementResolver
from qube_mesh.waits import first_visible, poll, safe_press

logger = logging.getLogger(__name__)

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

ISO_DATE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
DAY_FIRST_DATE = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$")
DISPLAYED_DATE = re.compile(r"\b(\d{1,4})[/.\- ]([A-Za-z]{3,9}|\d{1,2})[/.\-, ]+(\d{1,4})\b")

WIDGET_TIMEOUT_MS = 60_000
CALENDAR_OPEN_WAIT_MS = 5_000
OPEN_PASSES = 3
YEAR_PAGE_LIMIT = 5
ASSERT_TIMEOUT_MS = 20_000
INPUT_SETTLE_MS = 250


@dataclass(frozen=True)
class TargetDate:
    year: int
    month: int
    day: int
    raw: str = ""

    @classmethod
    def parse(cls, raw: str) -> TargetDate:
        """Parse ``YYYY-MM-DD`` (or ``YYYY/MM/DD``) and ``DD/MM/YYYY`` forms."""
        text = (raw or "").strip()
        match = ISO_DATE.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
        else:
            match = DAY_FIRST_DATE.match(text)
            if not match:
                raise DateFormatError(
                    f'Unsupported date "{raw}". Use YYYY-MM-DD or DD/MM/YYYY'
                )
            day, month, year = (int(part) for part in match.groups())
        try:
            datetime.date(year, month, day)
        except ValueError as e:
            raise DateFormatError(f'Invalid date "{raw}": {e}') from e
        return cls(year=year, month=month, day=day, raw=text)

    @property
    def month_abbreviation(self) -> str:
        return MONTH_ABBREVIATIONS[self.month - 1]

    @property
    def iso(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    @property
    def day_first(self) -> str:
        return f"{self.day:02d}/{self.month:02d}/{self.year:04d}"

    @property
    def day_first_dotted(self) -> str:
        return f"{self.day:02d}.{self.month:02d}.{self.year:04d}"

    @property
    def day_month_abbreviation(self) -> str:
        return f"{self.day:02d}-{self.month_abbreviation}-{self.year:04d}"

    def renderings(self) -> Tuple[str, ...]:
        """Textual forms the widget may use to display this date."""
        forms = [self.day_first, self.day_first_dotted, self.day_month_abbreviation, self.iso]
        if self.raw and self.raw not in forms:
            forms.append(self.raw)
        return tuple(forms)

    def is_rendered_in(self, text: str) -> bool:
        """Whether ``text`` shows this date, with or without zero padding."""
        haystack = (text or "").lower()
        if any(form.lower() in haystack for form in self.renderings()):
            return True
        return any(self._same_date(*parts) for parts in DISPLAYED_DATE.findall(text or ""))

    def _same_date(self, first: str, middle: str, last: str) -> bool:
        if middle.isdigit():
            month = int(middle)
        elif middle[:3].title() in MONTH_ABBREVIATIONS:
            month = MONTH_ABBREVIATIONS.index(middle[:3].title()) + 1
        else:
            return False
        if len(first) == 4:
            year, day = int(first), int(last)
        else:
            day, year = int(first), int(last)
        return (year, month, day) == (self.year, self.month, self.day)


class DatePicker:
    """Runs the date sub-protocol against one labelled date widget."""

    def __init__(self, resolver: ElementResolver) -> None:
        self.resolver = resolver
        self.page = resolver.page

    async def select(self, label: str, raw_date: str) -> TargetDate:
        """Set the widget whose label matches the regex ``label`` to ``raw_date``."""
        target = TargetDate.parse(raw_date)
        widget = await self.resolver.resolve(
            "dates.widget", timeout_ms=WIDGET_TIMEOUT_MS, label=label
        )
        logger.info("Selecting %s in the '%s' widget", target.iso, label)

        picked = False
        if await self.open_calendar(widget, label):
            picked = await self.pick_from_calendar(target)
            if not picked:
                logger.warning("Calendar navigation failed, typing the date instead")
        if not picked:
            await self.type_into_input(widget, target)

        await safe_press(self.page.keyboard, "Escape")
        await self.assert_rendered(widget, target)
        return target

    async def calendar_open(self) -> bool:
        return await self.resolver.is_present("dates.calendar")

    async def open_calendar(self, widget: Locator, label: str) -> bool:
        try:
            await widget.scroll_into_view_if_needed(timeout=5_000)
        except PlaywrightError:
            pass
        label_element = await first_visible(
            widget.locator("label").filter(has_text=re.compile(label, re.IGNORECASE))
        )
        if label_element is not None:
            try:
                await label_element.click(timeout=5_000)
            except PlaywrightError:
                pass

        openers: List[Locator] = list(self.resolver.candidates("dates.openers").locators(widget))
        openers.append(widget)
        for attempt in range(1, OPEN_PASSES + 1):
            for opener in openers:
                target = await first_visible(opener)
                if target is None:
                    continue
                try:
                    await target.click(timeout=5_000)
                except PlaywrightError:
                    continue
                if await poll(self.page, self.calendar_open, CALENDAR_OPEN_WAIT_MS):
                    logger.debug("Calendar opened on pass %d", attempt)
                    return True
        logger.info("No calendar overlay after %d passes", OPEN_PASSES)
        return False

    async def _click_cell(self, intent: str, text: str) -> bool:
        cell = await self.resolver.find(intent, text=re.escape(text))
        if cell is None:
            return False
        await self.resolver.click(cell, intent=f"calendar cell {text}")
        return True

    async def _visible_years(self) -> List[int]:
        cells = self.page.locator(".mat-calendar-body-cell")
        try:
            texts = await cells.all_inner_texts()
        except PlaywrightError:
            return []
        return [int(text.strip()) for text in texts if text.strip().isdigit() and len(text.strip()) == 4]

    async def pick_from_calendar(self, target: TargetDate) -> bool:
        period = await self.resolver.find("dates.period_button")
        if period is not None:
            await self.resolver.click(period, intent="calendar period button")

        year_text = str(target.year)
        for _ in range(YEAR_PAGE_LIMIT):
            if await self._click_cell("dates.cell", year_text):
                break
            years = await self._visible_years()
            direction = "dates.next_page" if years and target.year > max(years) else "dates.previous_page"
            pager = await self.resolver.find(direction)
            if pager is None:
                return False
            await self.resolver.click(pager, intent="calendar pager")
        else:
            return False

        if not await self._click_cell("dates.cell", target.month_abbreviation.upper()):
            return False
        return await self._click_cell("dates.day_cell", str(target.day))

    async def type_into_input(self, widget: Locator, target: TargetDate) -> None:
        field = await first_visible(widget.locator("input"))
        if field is None:
            field = widget.locator("input").first
        try:
            input_type = (await field.get_attribute("type") or "").lower()
        except PlaywrightError:
            input_type = ""

        preferred = target.iso if input_type == "date" else target.day_first
        attempts: List[str] = []
        for text in (preferred, target.day_first, target.iso, target.day_month_abbreviation):
            if text not in attempts:
                attempts.append(text)

        for text in attempts:
            try:
                await field.fill(text)
                await field.press("Enter")
            except PlaywrightError as e:
                logger.debug("Typing '%s' into the date input failed: %s", text, e)
                continue
            await self.page.mouse.click(10, 10)
            await self.page.wait_for_timeout(INPUT_SETTLE_MS)
            try:
                value = await field.input_value()
            except PlaywrightError:
                value = ""
            if value.strip():
                logger.debug("Date input accepted '%s'", text)
                return
        logger.warning("Date input never kept a value for %s", target.iso)

    async def displayed_text(self, widget: Locator) -> str:
        """Widget text, input values and aria labels joined into one string."""
        parts: List[str] = []
        try:
            parts.append(await widget.inner_text(timeout=2_000))
        except PlaywrightError:
            pass
        inputs = widget.locator("input")
        try:
            count = await inputs.count()
        except PlaywrightError:
            count = 0
        for index in range(count):
            try:
                parts.append(await inputs.nth(index).input_value())
            except PlaywrightError:
                continue
        labelled = widget.locator("[aria-label]")
        try:
            count = await labelled.count()
        except PlaywrightError:
            count = 0
        for index in range(count):
            try:
                parts.append(await labelled.nth(index).get_attribute("aria-label") or "")
            except PlaywrightError:
                continue
        return " ".join(part for part in parts if part)

    async def assert_rendered(self, widget: Locator, target: TargetDate) -> None:
        async def check() -> bool:
            return target.is_rendered_in(await self.displayed_text(widget))

        if not await poll(self.page, check, self.resolver.scaled(ASSERT_TIMEOUT_MS)):
            shown = await self.displayed_text(widget)
            raise DateSelectionError(
                f"Date widget does not show {target.day_first} (shows {shown!r})",
                await self.resolver.diagnostics(),
            )

