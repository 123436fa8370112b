"""Intent replay for beadwork.

When a sync cannot rebase local commits onto the remote cleanly, the local
commits are thrown away and their intent lines are re-executed, one by one,
against the remote state. Each intent runs through the same store operation
the original command used and is committed with its original text.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from beadwork_core.comments import add_comment
from beadwork_core.dependencies import link_issues, unlink_issues
from beadwork_core.exceptions import BeadworkError, IntentSyntaxError
from beadwork_core.intent import Intent, IntentVerb, parse_intent
from beadwork_core.issues import (
    close_issue,
    create_issue,
    defer_issue,
    delete_issue,
    label_issue,
    reopen_issue,
    start_issue,
    undefer_issue,
    update_issue,
)
from beadwork_core.store import ConfigCommitter, IssueStore

__all__ = [
    "ReplayFailure",
    "ReplayResult",
    "replay_intents",
]

logger = logging.getLogger(__name__)

_PRIORITY_TOKEN = re.compile(r"^p(\d+)$")

# Verbs that describe whole-repository events rather than store mutations
_NOT_REPLAYED = {IntentVerb.INIT, IntentVerb.IMPORT, IntentVerb.UPGRADE}

# update intent field -> update_issue keyword
_UPDATE_FIELDS = {
    "title": "title",
    "description": "description",
    "priority": "priority",
    "assignee": "assignee",
    "type": "type",
    "status": "status",
    "defer": "defer_until",
    "parent": "parent",
}


@dataclass
class ReplayFailure:
    """An intent that parsed but could not be applied."""

    intent: str
    error: BeadworkError

    def __str__(self) -> str:
        return f"replay {self.intent!r}: {self.error}"


@dataclass
class ReplayResult:
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: List[ReplayFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _parse_priority(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise IntentSyntaxError(f"invalid priority {value!r}") from None


def _require_exact(store: IssueStore, *issue_ids: str) -> None:
    # Intents carry full IDs, never partial ones
    for issue_id in issue_ids:
        if issue_id:
            store.resolve_id(issue_id, exact=True)


def _replay_create(store: IssueStore, intent: Intent) -> None:
    # create <id> p<n> <type> "<title>" [description=...] [assignee=...] [parent=...] [defer=...]
    issue_id = intent.arg(0)
    match = _PRIORITY_TOKEN.match(intent.arg(1))
    if not match:
        raise IntentSyntaxError(f"malformed create intent: {intent.raw!r}")
    issue_type = intent.arg(2)
    title = " ".join(intent.args[3:])
    if not title:
        raise IntentSyntaxError(f"malformed create intent: {intent.raw!r}")

    _require_exact(store, intent.fields.get("parent", ""))
    create_issue(
        store,
        title,
        description=intent.fields.get("description", ""),
        priority=int(match.group(1)),
        type=issue_type,
        assignee=intent.fields.get("assignee", ""),
        parent=intent.fields.get("parent") or None,
        defer_until=intent.fields.get("defer") or None,
        issue_id=issue_id,
    )


def _replay_close(store: IssueStore, intent: Intent) -> None:
    _require_exact(store, intent.arg(0))
    close_issue(store, intent.arg(0), reason=intent.fields.get("reason", ""))


def _replay_reopen(store: IssueStore, intent: Intent) -> None:
    _require_exact(store, intent.arg(0))
    reopen_issue(store, intent.arg(0))


def _replay_update(store: IssueStore, intent: Intent) -> None:
    changes = {}
    for key, value in intent.fields.items():
        keyword = _UPDATE_FIELDS.get(key)
        if keyword is None:
            logger.debug("Ignoring unknown update field %r in %r", key, intent.raw)
            continue
        changes[keyword] = _parse_priority(value) if keyword == "priority" else value
    if not changes:
        raise IntentSyntaxError(f"malformed update intent: {intent.raw!r}")
    _require_exact(store, intent.arg(0), intent.fields.get("parent", ""))
    update_issue(store, intent.arg(0), **changes)


def _replay_start(store: IssueStore, intent: Intent) -> None:
    _require_exact(store, intent.arg(0))
    start_issue(store, intent.arg(0), intent.fields.get("assignee", ""))


def _replay_defer(store: IssueStore, intent: Intent) -> None:
    # defer <id> until <date>
    date = intent.arg(2) if intent.arg(1) == "until" else intent.arg(1)
    _require_exact(store, intent.arg(0))
    defer_issue(store, intent.arg(0), date)


def _replay_undefer(store: IssueStore, intent: Intent) -> None:
    _require_exact(store, intent.arg(0))
    undefer_issue(store, intent.arg(0))


def _edge_ids(store: IssueStore, intent: Intent):
    # link <blocker> blocks <blocked>
    if intent.arg(1) != "blocks":
        raise IntentSyntaxError(f"malformed {intent.verb.value} intent: {intent.raw!r}")
    _require_exact(store, intent.arg(0), intent.arg(2))
    return intent.arg(0), intent.arg(2)


def _replay_link(store: IssueStore, intent: Intent) -> None:
    link_issues(store, *_edge_ids(store, intent))


def _replay_unlink(store: IssueStore, intent: Intent) -> None:
    unlink_issues(store, *_edge_ids(store, intent))


def _replay_label(store: IssueStore, intent: Intent) -> None:
    # label <id> +add -remove
    add, remove = [], []
    for token in intent.args[1:]:
        if token.startswith("+"):
            add.append(token[1:])
        elif token.startswith("-"):
            remove.append(token[1:])
    if not add and not remove:
        raise IntentSyntaxError(f"malformed label intent: {intent.raw!r}")
    _require_exact(store, intent.arg(0))
    label_issue(store, intent.arg(0), add=add, remove=remove)


def _replay_delete(store: IssueStore, intent: Intent) -> None:
    _require_exact(store, intent.arg(0))
    delete_issue(store, intent.arg(0))


def _replay_comment(store: IssueStore, intent: Intent) -> None:
    _require_exact(store, intent.arg(0))
    add_comment(store, intent.arg(0), intent.arg(1), author=intent.fields.get("author", ""))


def _replay_config(store: IssueStore, intent: Intent) -> None:
    # config key=value
    if len(intent.fields) != 1:
        raise IntentSyntaxError(f"malformed config intent: {intent.raw!r}")
    if not isinstance(store.committer, ConfigCommitter):
        raise BeadworkError("config intents need a committer that can set config")
    (key, value), = intent.fields.items()
    store.committer.set_config(key, value)


_HANDLERS: Dict[IntentVerb, Callable[[IssueStore, Intent], None]] = {
    IntentVerb.CREATE: _replay_create,
    IntentVerb.CLOSE: _replay_close,
    IntentVerb.REOPEN: _replay_reopen,
    IntentVerb.UPDATE: _replay_update,
    IntentVerb.START: _replay_start,
    IntentVerb.DEFER: _replay_defer,
    IntentVerb.UNDEFER: _replay_undefer,
    IntentVerb.LINK: _replay_link,
    IntentVerb.UNLINK: _replay_unlink,
    IntentVerb.LABEL: _replay_label,
    IntentVerb.DELETE: _replay_delete,
    IntentVerb.COMMENT: _replay_comment,
    IntentVerb.CONFIG: _replay_config,
}


def _parse_replayable(raw: str) -> Optional[Intent]:
    try:
        intent = parse_intent(raw)
    except IntentSyntaxError as e:
        logger.warning("Skipping unparseable intent %r: %s", raw, e)
        return None
    if intent.verb in _NOT_REPLAYED:
        logger.info("Skipping non-replayable intent %r", raw)
        return None
    return intent


def replay_intents(store: IssueStore, intents: Iterable[str]) -> ReplayResult:
    """Re-execute intent lines against the store's current state.

    Each intent is applied and committed on its own. Intents that cannot be
    parsed, or that describe repository-level events, are skipped. An intent
    whose operation fails is recorded in ``failures`` and the batch moves on.

    Args:
        store: Issue store attached to a committer
        intents: Intent lines, oldest first

    Returns:
        ReplayResult listing applied, skipped and failed intents
    """
    result = ReplayResult()

    for raw in intents:
        intent = _parse_replayable(raw)
        if intent is None:
            result.skipped.append(raw)
            continue

        try:
            _HANDLERS[intent.verb](store, intent)
        except BeadworkError as e:
            logger.warning("Replay of %r failed: %s", raw, e)
            result.failures.append(ReplayFailure(intent=raw, error=e))
            continue

        store.commit(intent.raw)
        result.applied.append(raw)

    logger.info(
        "Replayed %d intents (%d skipped, %d failed)",
        len(result.applied),
        len(result.skipped),
        len(result.failures),
    )
    return result
