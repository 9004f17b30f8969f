"""Parsers for free-text RCON command output."""

import re

from remote_console.models import ParseStatus, PlayerList, PlayerRecord

NO_PLAYERS_SENTINEL = "no players connected"
DEFAULT_MAX_PLAYERS = 150

PLAYER_LINE = re.compile(r"^\d+\.\s*([^,]+),\s*([a-f0-9]+)\s*$", re.IGNORECASE)
MAX_PLAYERS = re.compile(r"MaxPlayers[:\s]+(\d+)", re.IGNORECASE)


def parse_player_list(text: str) -> PlayerList:
    """Parse `<index>. <name>, <hex-identity>` lines, skipping anything else."""
    players: list[PlayerRecord] = []
    unmatched = 0

    for line in text.splitlines():
        line = line.strip()
        if not line or NO_PLAYERS_SENTINEL in line.lower():
            continue
        match = PLAYER_LINE.match(line)
        if match is None:
            unmatched += 1
            continue
        players.append(
            PlayerRecord(name=match.group(1).strip(), identity=match.group(2).strip())
        )

    if players:
        status = ParseStatus.PARSED
    elif unmatched:
        status = ParseStatus.UNPARSED
    else:
        status = ParseStatus.EMPTY
    return PlayerList(count=len(players), players=players, parse_status=status)


def parse_max_players(text: str) -> int | None:
    """Return the number after a `MaxPlayers` marker, or None."""
    match = MAX_PLAYERS.search(text)
    if match is None:
        return None
    return int(match.group(1))
