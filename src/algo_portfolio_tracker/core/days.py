"""UTC calendar-day helpers shared by pricing and history reconstruction."""

from datetime import UTC, date, datetime, timedelta

SECONDS_PER_DAY = 24 * 60 * 60


def from_unix(ts: int | float) -> datetime:
    """Convert unix seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(ts, tz=UTC)


def to_iso(moment: datetime) -> str:
    """
    Format a datetime as an ISO-8601 UTC string with millisecond precision.

    Parameters
    ----------
    moment : datetime
        Datetime to format. Naive values are treated as UTC.

    Returns
    -------
    str
        Timestamp such as ``2025-02-17T08:00:00.000Z``

    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    moment = moment.astimezone(UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def unix_to_iso(ts: int | float) -> str:
    """Format unix seconds as an ISO-8601 UTC string."""
    return to_iso(from_unix(ts))


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """
    Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def utc_day_key(ts: int | float) -> str:
    """Return the ``YYYY-MM-DD`` UTC day key for unix seconds."""
    return from_unix(ts).strftime("%Y-%m-%d")


def day_key_of(moment: datetime) -> str:
    """Return the ``YYYY-MM-DD`` UTC day key for a datetime."""
    return moment.astimezone(UTC).strftime("%Y-%m-%d")


def parse_day_key(day_key: str) -> date:
    """Parse a ``YYYY-MM-DD`` day key."""
    return date.fromisoformat(day_key)


def day_start_unix(day_key: str) -> int:
    """Unix seconds at 00:00:00 UTC of the given day."""
    day = parse_day_key(day_key)
    return int(datetime(day.year, day.month, day.day, tzinfo=UTC).timestamp())


def day_end_iso(day_key: str) -> str:
    """ISO timestamp of the last millisecond of the given UTC day."""
    day = parse_day_key(day_key)
    return to_iso(datetime(day.year, day.month, day.day, 23, 59, 59, 999_000, tzinfo=UTC))


def enumerate_day_keys(start_day_key: str, end_day_key: str) -> list[str]:
    """List every day key from start to end, both inclusive."""
    current = parse_day_key(start_day_key)
    end = parse_day_key(end_day_key)
    out = []
    while current <= end:
        out.append(current.isoformat())
        current += timedelta(days=1)
    return out


def coingecko_date(ts: int | float) -> str:
    """Return the ``dd-mm-yyyy`` date CoinGecko uses for daily history."""
    return from_unix(ts).strftime("%d-%m-%Y")


def day_key_to_coingecko_date(day_key: str) -> str:
    """Convert ``YYYY-MM-DD`` into ``dd-mm-yyyy``."""
    return parse_day_key(day_key).strftime("%d-%m-%Y")


def historical_price_key(asset_key: str, ts: int | float) -> str:
    """
    Key of an asset's historical price on the UTC day of `ts`.

    Parameters
    ----------
    asset_key : str
        Canonical asset key
    ts : int | float
        Unix seconds

    Returns
    -------
    str
        ``<asset_key>:<dd-mm-yyyy>``

    """
    return f"{asset_key}:{coingecko_date(ts)}"
