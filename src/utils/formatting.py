from datetime import datetime, timezone
from time import time

from constants import RELATIVE_TIME_WINDOW, SELECT_LABEL_LIMIT


def scrim_meta(scrim, other=None, now=None):
    """`EU/PC 4k-4.5k on <timestamp>`, the time is left out when it equals other's."""
    text = f"{scrim.region}/{scrim.platform} {scrim.rank_range}"
    if other is None or scrim.time != other.time:
        text += f" on <t:{scrim.time}:F>"
        now = int(time()) if now is None else now
        if scrim.time - now < RELATIVE_TIME_WINDOW:
            text += f" (<t:{scrim.time}:R>)"
    return text


def scrim_with_name(scrim, other=None, show_creator=True, now=None):
    text = ""
    if show_creator:
        text += f"<@{scrim.creator_id}> "
        if scrim.team_name:
            text += f"(**{scrim.team_name}**) "
    elif scrim.team_name:
        text += f"**{scrim.team_name}** "
    return text + scrim_meta(scrim, other, now)


def scrim_heading(scrim, now=None):
    team = f"{scrim.team_name}: " if scrim.team_name else ""
    return f"## {team}{scrim_meta(scrim, now=now)}"


def candidate_label(number, scrim):
    """Plain text label for a select option, mentions don't render there."""
    team = scrim.team_name or "Unnamed team"
    label = f"{number}. {team} - {scrim.region}/{scrim.platform} {scrim.rank_range}"
    return label[:SELECT_LABEL_LIMIT]


def local_time(scrim, zone):
    return datetime.fromtimestamp(scrim.time, tz=timezone.utc).astimezone(zone).strftime("%A, %B %d, %H:%M %Z")
