"""Per user scrim session.

A session is opened by `/scrims` and holds one sub-flow per upcoming scrim of
the user. Each sub-flow is in exactly one of three states and only moves on a
control action scoped to its index:

    Looking   --refresh-->   Looking    (re-run the match finder)
    Looking   --accept(n)--> Matched    (propose to candidate n)
    Looking   --cancel-->    Cancelled
    Matched   --revoke-->    Looking
    Cancelled --restore-->   Looking

Anything else is ignored. The session knows nothing about discord, the cog
feeds it parsed control ids and renders the resulting states.
"""
import logging
from dataclasses import dataclass, field, replace
from uuid import uuid4

from cogs.database import MatchFinder, ScrimRequest, ScrimStore
from utils.errors import NotFoundError

logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG)

ACCEPT = "accept"
REFRESH = "refresh"
CANCEL = "cancel"
REVOKE = "revoke"
RESTORE = "restore"
REMOVE_MESSAGES = "remove_msgs"
ACTIONS = (ACCEPT, REFRESH, CANCEL, REVOKE, RESTORE, REMOVE_MESSAGES)


@dataclass
class Looking:
    candidates: list = field(default_factory=list)  # ScoredScrim, best first
    previous_revoked: bool = False


@dataclass
class Matched:
    partner: ScrimRequest
    confirmed: bool = False  # partner proposed back


@dataclass
class Cancelled:
    pass


@dataclass
class SubFlow:
    scrim: ScrimRequest
    state: object = None


def is_stale_proposal(scrim: ScrimRequest, partner: ScrimRequest) -> bool:
    """A proposal is stale once the partner is gone or proposed to someone else."""
    if partner is None or partner.cancelled:
        return True
    return partner.match_id is not None and partner.match_id != scrim.id


class ScrimSession:
    def __init__(self, store: ScrimStore, finder: MatchFinder, scrims, session_id=None):
        self.store = store
        self.finder = finder
        self.session_id = session_id or uuid4().hex
        self.flows = [SubFlow(scrim) for scrim in scrims]

    def open(self):
        """Compute the starting state of every sub-flow, revoking stale proposals."""
        for flow in self.flows:
            flow.state = self.initial_state(flow)
        return self

    def initial_state(self, flow: SubFlow):
        scrim = flow.scrim
        if scrim.cancelled:
            return Cancelled()
        if scrim.match_id is None:
            return self.looking(flow)

        try:
            partner = self.store.get(scrim.match_id)
        except NotFoundError:
            partner = None

        if is_stale_proposal(scrim, partner):
            logger.info(f"Proposal of scrim {scrim.id} to {scrim.match_id} is stale, revoking")
            self.store.revoke_match(scrim.id)
            flow.scrim = replace(scrim, match_id=None)
            return self.looking(flow, previous_revoked=True)
        return Matched(partner, confirmed=partner.match_id == scrim.id)

    def looking(self, flow: SubFlow, previous_revoked=False):
        return Looking(self.finder.find(flow.scrim), previous_revoked)

    def custom_id(self, action, index=0):
        return f"{self.session_id}:{action}:{index}"

    def owns(self, custom_id) -> bool:
        return isinstance(custom_id, str) and custom_id.startswith(f"{self.session_id}:")

    def parse_custom_id(self, custom_id):
        """Return (action, index) for a control of this session, None for anything else."""
        if not self.owns(custom_id):
            return None
        parts = custom_id.split(":")
        if len(parts) != 3 or parts[1] not in ACTIONS:
            return None
        try:
            index = int(parts[2])
        except ValueError:
            return None
        if parts[1] != REMOVE_MESSAGES and not 0 <= index < len(self.flows):
            return None
        return parts[1], index

    def apply(self, action, index, values=()) -> bool:
        """Run a control action against sub-flow `index`. Returns False when it was ignored."""
        if not 0 <= index < len(self.flows):
            return False
        flow = self.flows[index]
        state = flow.state
        scrim = flow.scrim

        if isinstance(state, Looking):
            if action == REFRESH:
                flow.state = self.looking(flow)
            elif action == ACCEPT:
                candidate = self.pick_candidate(state, values)
                if candidate is None:
                    return False
                self.store.propose_match(scrim.id, candidate.id)
                flow.scrim = replace(scrim, match_id=candidate.id)
                flow.state = Matched(candidate, confirmed=candidate.match_id == scrim.id)
            elif action == CANCEL:
                self.store.cancel(scrim.id)
                flow.scrim = replace(scrim, cancelled=True)
                flow.state = Cancelled()
            else:
                return False
        elif isinstance(state, Matched) and action == REVOKE:
            self.store.revoke_match(scrim.id)
            flow.scrim = replace(scrim, match_id=None)
            flow.state = self.looking(flow)
        elif isinstance(state, Cancelled) and action == RESTORE:
            self.store.restore(scrim.id)
            flow.scrim = replace(scrim, cancelled=False)
            flow.state = self.looking(flow)
        else:
            return False

        logger.debug(f"Session {self.session_id} flow {index}: {action} -> {type(flow.state).__name__}")
        return True

    @staticmethod
    def pick_candidate(state: Looking, values):
        if not values:
            return None
        try:
            n = int(values[0])
        except (TypeError, ValueError):
            return None
        if not 0 <= n < len(state.candidates):
            return None
        return state.candidates[n].scrim
