import sqlite3
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from time import time
from typing import NamedTuple

from constants import DEFAULT_CONFIG
from utils.errors import NotFoundError, TransientIOError
from utils.parsing import RankRange

logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG)


@dataclass
class ScrimRequest:
    creator_id: int
    region: str
    platform: str
    rank_range: RankRange
    time: int  # unix timestamp, UTC
    team_name: str = None
    match_id: int = None
    cancelled: bool = False
    id: int = None

    def __str__(self):
        return f"#{self.id} {self.region}/{self.platform} {self.rank_range}@{self.time}"


class ScoredScrim(NamedTuple):
    difference: float
    scrim: ScrimRequest


@dataclass(frozen=True)
class MatchWeights:
    rank: float = DEFAULT_CONFIG['rank_weight']
    time: float = DEFAULT_CONFIG['time_weight']
    region: float = DEFAULT_CONFIG['region_weight']
    platform: float = DEFAULT_CONFIG['platform_weight']
    proposal_bonus: float = DEFAULT_CONFIG['proposal_bonus']

    @classmethod
    def from_config(cls, config):
        return cls(
            rank=float(config.get('rank_weight', cls.rank)),
            time=float(config.get('time_weight', cls.time)),
            region=float(config.get('region_weight', cls.region)),
            platform=float(config.get('platform_weight', cls.platform)),
            proposal_bonus=float(config.get('proposal_bonus', cls.proposal_bonus)),
        )


def row_to_scrim(row):
    return ScrimRequest(
        id=row['id'],
        creator_id=row['creator_id'],
        team_name=row['team_name'],
        region=row['region'],
        platform=row['platform'],
        rank_range=RankRange(row['rank_from'], row['rank_to']),
        time=row['time'],
        match_id=row['match_id'],
        cancelled=bool(row['cancelled']),
    )


@contextmanager
def io_errors(action):
    try:
        yield
    except sqlite3.Error as e:
        logger.error(f"Database error while trying to {action}: {e}")
        raise TransientIOError(f"Database error while trying to {action}") from e


def create_tables(con):
    cur = con.cursor()
    # Table for a discord user's preferences
    cur.execute(f"CREATE TABLE IF NOT EXISTS users("
                                                f"id INT PRIMARY KEY,"
                                                f"timezone TEXT NOT NULL"
                                                f")")

    # Table for scrim requests, match_id points at the request this one proposed to
    cur.execute(f"CREATE TABLE IF NOT EXISTS scrims("
                                                f"id INTEGER PRIMARY KEY,"
                                                f"creator_id INT NOT NULL,"
                                                f"region TEXT NOT NULL,"
                                                f"platform TEXT NOT NULL,"
                                                f"rank_from INTEGER NOT NULL,"
                                                f"rank_to INTEGER NOT NULL,"
                                                f"time INTEGER NOT NULL," # unix timestamp
                                                f"match_id INTEGER,"
                                                f"team_name TEXT,"
                                                f"cancelled BOOLEAN NOT NULL DEFAULT 0,"
                                                f"CHECK (rank_from <= rank_to),"
                                                f"FOREIGN KEY (match_id) REFERENCES scrims(id) ON UPDATE CASCADE ON DELETE SET NULL"
                                                f")")
    cur.execute("CREATE INDEX IF NOT EXISTS scrims_creator_time ON scrims (creator_id, time)")
    con.commit()


class ScrimStore:
    """Persistence for scrim requests. Every call commits on its own."""

    def __init__(self, con, clock=time):
        self.con = con
        self.con.row_factory = sqlite3.Row
        self.clock = clock
        with io_errors("set up the scrims tables"):
            create_tables(self.con)

    def now(self):
        return int(self.clock())

    def create(self, scrim: ScrimRequest) -> int:
        with io_errors("create a scrim"):
            cur = self.con.execute(
                "INSERT INTO scrims (creator_id, region, platform, rank_from, rank_to, time, match_id, team_name, cancelled) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (scrim.creator_id, scrim.region, scrim.platform, scrim.rank_range.start, scrim.rank_range.end,
                 scrim.time, scrim.match_id, scrim.team_name, scrim.cancelled)
            )
            self.con.commit()
        logger.info(f"Created scrim {cur.lastrowid} for {scrim.creator_id}")
        return cur.lastrowid

    def _update(self, action, query, params):
        with io_errors(action):
            self.con.execute(query, params)
            self.con.commit()

    def cancel(self, scrim_id: int):
        logger.info(f"Cancelling scrim {scrim_id}")
        self._update("cancel a scrim", "UPDATE scrims SET cancelled = 1 WHERE id = ?", (scrim_id,))

    def restore(self, scrim_id: int):
        logger.info(f"Restoring scrim {scrim_id}")
        self._update("restore a scrim", "UPDATE scrims SET cancelled = 0 WHERE id = ?", (scrim_id,))

    def propose_match(self, from_id: int, to_id: int):
        # Only the proposing side is updated, the other request is left as is
        logger.info(f"Scrim {from_id} proposed to scrim {to_id}")
        self._update("match scrims", "UPDATE scrims SET match_id = ? WHERE id = ?", (to_id, from_id))

    def revoke_match(self, scrim_id: int):
        logger.info(f"Revoking match of scrim {scrim_id}")
        self._update("revoke a match", "UPDATE scrims SET match_id = NULL WHERE id = ?", (scrim_id,))

    def list_active_by_creator(self, creator_id: int):
        with io_errors("list scrims"):
            rows = self.con.execute(
                "SELECT * FROM scrims WHERE creator_id = ? AND time >= ? AND NOT cancelled ORDER BY time ASC, id ASC",
                (creator_id, self.now())
            ).fetchall()
        return [row_to_scrim(row) for row in rows]

    def get(self, scrim_id: int) -> ScrimRequest:
        with io_errors("fetch a scrim"):
            row = self.con.execute("SELECT * FROM scrims WHERE id = ?", (scrim_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Scrim #{scrim_id} doesn't exist")
        return row_to_scrim(row)


class UserPreferences:
    """Per user timezone, keyed by discord id."""

    def __init__(self, con):
        self.con = con
        self.con.row_factory = sqlite3.Row
        with io_errors("set up the users table"):
            create_tables(self.con)

    def set_timezone(self, user_id: int, zone_name: str):
        with io_errors("save your timezone"):
            self.con.execute(
                "INSERT INTO users (id, timezone) VALUES (?, ?) ON CONFLICT (id) DO UPDATE SET timezone = excluded.timezone",
                (user_id, zone_name)
            )
            self.con.commit()
        logger.info(f"Timezone of {user_id} set to {zone_name}")

    def get_timezone(self, user_id: int) -> str:
        with io_errors("fetch your timezone"):
            row = self.con.execute("SELECT timezone FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError("You haven't set your timezone yet. Use `/timezone zone:<timezone>` to set it")
        return row['timezone']


class MatchFinder:
    """Ranks other open scrims against a reference one, lowest difference first."""

    def __init__(self, store: ScrimStore, weights: MatchWeights = None, limit=DEFAULT_CONFIG['max_candidates']):
        self.store = store
        self.weights = weights or MatchWeights()
        self.limit = limit

    def find(self, scrim: ScrimRequest):
        w = self.weights
        with io_errors("find matches"):
            rows = self.store.con.execute(
                "SELECT *, ("
                "ABS((rank_from + rank_to) / 2.0 - ?) * ? + "
                "ABS(time - ?) * ? + "
                "(region != ?) * ? + "
                "(platform != ?) * ? + "
                "(match_id IS NOT NULL AND match_id = ?) * ?"
                ") AS difference "
                "FROM scrims "
                "WHERE creator_id != ? AND time >= ? AND NOT cancelled AND (match_id IS NULL OR match_id = ?) "
                "ORDER BY difference ASC, time ASC, id ASC LIMIT ?",
                (scrim.rank_range.midpoint, w.rank,
                 scrim.time, w.time,
                 scrim.region, w.region,
                 scrim.platform, w.platform,
                 scrim.id, -w.proposal_bonus,
                 scrim.creator_id, self.store.now(), scrim.id,
                 self.limit)
            ).fetchall()
        logger.debug(f"Found {len(rows)} candidates for scrim {scrim.id}")
        return [ScoredScrim(row['difference'], row_to_scrim(row)) for row in rows]
