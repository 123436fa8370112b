"""CLI module for beadwork - typer app and all commands.

Every mutating command changes the worktree through the store, then
commits with the intent line that describes the change.
"""

import json
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

import typer
from typing_extensions import Annotated

from beadwork_core.comments import add_comment
from beadwork_core.constants import PRIORITY_RANGE, VALID_STATUSES
from beadwork_core.dependencies import (
    get_blocked,
    get_graph,
    get_ready,
    link_issues,
    nearest_open_blockers,
    newly_unblocked,
    unlink_issues,
)
from beadwork_core.exceptions import BeadworkError, SchemaVersionError, ValidationError
from beadwork_core.intent import format_intent
from beadwork_core.issues import (
    close_issue,
    create_issue,
    defer_issue,
    delete_issue,
    delete_preview,
    get_children,
    get_issue,
    label_issue,
    list_issues,
    reopen_issue,
    start_issue,
    undefer_issue,
    update_issue,
)
from beadwork_core.log import setup_logging
from beadwork_core.migrations import upgrade_repo
from beadwork_core.models import Issue
from beadwork_core.replay import replay_intents
from beadwork_core.repo import SYNC_NEEDS_REPLAY, Repo
from beadwork_core.store import IssueStore

__all__ = ["app", "main"]

app = typer.Typer(help="bw - git-backed issue tracking that syncs between clones")


@app.callback()
def _global_options(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log to stderr")] = False,
):
    ctx.obj = {"verbose": verbose}


@contextmanager
def _errors() -> Iterator[None]:
    """Turn beadwork errors into the CLI's "Error: ..." output and exit code 1."""
    try:
        yield
    except SchemaVersionError as e:
        print(f"Error: {e}")
        if e.hint:
            print(f"Hint: {e.hint}")
        raise typer.Exit(code=1)
    except BeadworkError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)


def _locate(ctx: typer.Context) -> Repo:
    repo = Repo.locate()
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    setup_logging(repo.git_dir, verbose=verbose)
    return repo


def _open(ctx: typer.Context, check_version: bool = True) -> Tuple[Repo, IssueStore]:
    """Locate the repository and build a store committing through it."""
    repo = _locate(ctx)
    repo.require_initialized()
    if check_version:
        repo.check_version()

    default_priority = None
    configured = repo.get_config("default.priority")
    if configured:
        try:
            default_priority = int(configured)
        except ValueError:
            raise ValidationError(f"default.priority must be a number, got {configured!r}") from None

    store = IssueStore(repo.work_tree, repo.prefix, committer=repo, default_priority=default_priority)
    return repo, store


def _issue_line(issue: Issue) -> str:
    line = f"{issue.id} [P{issue.priority}] [{issue.status}] {issue.title}"
    if issue.assignee:
        line += f" @{issue.assignee}"
    return line


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


@app.command()
def init(
    ctx: typer.Context,
    prefix: Annotated[str, typer.Option(help="ID prefix (default: derived from the repo name)")] = "",
    force: Annotated[bool, typer.Option("--force", help="Destroy and recreate the beadwork branch")] = False,
):
    """Initialize beadwork in the current git repository."""
    with _errors():
        repo = _locate(ctx)
        if force:
            repo.force_reinit(prefix)
        else:
            repo.init(prefix)
    print(f"Initialized beadwork with prefix: {repo.prefix}")


@app.command()
def create(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="Issue title")],
    description: Annotated[str, typer.Option("--description", "-d", help="Detailed description")] = "",
    priority: Annotated[Optional[int], typer.Option("--priority", "-p", help="Priority level (0-4)")] = None,
    issue_type: Annotated[str, typer.Option("--type", "-t", help="Issue type")] = "task",
    assignee: Annotated[str, typer.Option(help="Assignee")] = "",
    parent: Annotated[Optional[str], typer.Option(help="Parent issue ID")] = None,
    defer: Annotated[Optional[str], typer.Option(help="Defer until date (YYYY-MM-DD)")] = None,
    issue_id: Annotated[Optional[str], typer.Option("--id", help="Use this ID instead of generating one")] = None,
):
    """Create a new issue."""
    with _errors():
        _, store = _open(ctx)
        issue = create_issue(
            store,
            title,
            description=description,
            priority=priority,
            type=issue_type,
            assignee=assignee,
            parent=parent,
            defer_until=defer,
            issue_id=issue_id,
        )

        fields: Dict[str, str] = {}
        if issue.description:
            fields["description"] = issue.description
        if issue.assignee:
            fields["assignee"] = issue.assignee
        if issue.parent:
            fields["parent"] = issue.parent
        if issue.defer_until:
            fields["defer"] = issue.defer_until
        store.commit(format_intent("create", issue.id, f"p{issue.priority}", issue.type, issue.title, **fields))

    print(f"Created {issue.id}: {issue.title}")


@app.command()
def show(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
    as_json: Annotated[bool, typer.Option("--json", help="Output JSON")] = False,
):
    """Show full details of an issue."""
    with _errors():
        _, store = _open(ctx)
        issue = get_issue(store, issue_id)
        children = get_children(store, issue.id)
        waiting_on = nearest_open_blockers(store, issue.id) if issue.status != "closed" else []

    if as_json:
        data = issue.to_dict()
        data["children"] = [c.id for c in children]
        data["waiting_on"] = waiting_on
        _print_json(data)
        return

    print(_issue_line(issue))
    print(f"Type: {issue.type}")
    print(f"Created: {issue.created}")
    if issue.parent:
        print(f"Parent: {issue.parent}")
    if issue.labels:
        print(f"Labels: {', '.join(issue.labels)}")
    if issue.defer_until:
        print(f"Deferred until: {issue.defer_until}")
    if issue.status == "closed":
        print(f"Closed: {issue.closed_at}" + (f" ({issue.close_reason})" if issue.close_reason else ""))
    if issue.description:
        print()
        print(issue.description)
    if issue.blocked_by:
        print(f"\nBlocked by: {', '.join(issue.blocked_by)}")
    if waiting_on:
        print(f"Waiting on: {', '.join(waiting_on)}")
    if issue.blocks:
        print(f"Blocks: {', '.join(issue.blocks)}")
    if children:
        print("\nChildren:")
        for child in children:
            print(f"  {_issue_line(child)}")
    if issue.comments:
        print("\nComments:")
        for comment in issue.comments:
            print(f"  [{comment.timestamp}] {comment.author or 'unknown'}: {comment.text}")


@app.command(name="list")
def list_cmd(
    ctx: typer.Context,
    status: Annotated[
        Optional[str], typer.Option(help="Comma-separated statuses, or 'all' (default: open,in_progress)")
    ] = None,
    assignee: Annotated[Optional[str], typer.Option(help="Filter by assignee")] = None,
    priority: Annotated[Optional[int], typer.Option(help="Filter by priority")] = None,
    issue_type: Annotated[Optional[str], typer.Option("--type", help="Filter by type")] = None,
    label: Annotated[Optional[str], typer.Option(help="Filter by label")] = None,
    grep: Annotated[Optional[str], typer.Option(help="Search title and description")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Output JSON")] = False,
):
    """List issues."""
    statuses: Optional[List[str]] = None
    if status == "all":
        statuses = list(VALID_STATUSES)
    elif status:
        statuses = [s.strip() for s in status.split(",") if s.strip()]

    with _errors():
        _, store = _open(ctx)
        issues = list_issues(
            store,
            statuses=statuses,
            assignee=assignee,
            priority=priority,
            type=issue_type,
            label=label,
            grep=grep,
        )

    if as_json:
        _print_json([i.to_dict() for i in issues])
        return
    if not issues:
        print("No issues found")
        return
    for issue in issues:
        print(_issue_line(issue))


@app.command()
def ready(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Output JSON")] = False,
):
    """Show open issues with no open blockers."""
    with _errors():
        _, store = _open(ctx)
        issues = get_ready(store)

    if as_json:
        _print_json([i.to_dict() for i in issues])
        return
    if not issues:
        print("No ready issues")
        return
    for issue in issues:
        print(_issue_line(issue))


@app.command()
def blocked(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Output JSON")] = False,
):
    """Show issues waiting on open blockers."""
    with _errors():
        _, store = _open(ctx)
        entries = get_blocked(store)

    if as_json:
        _print_json([b.to_dict() for b in entries])
        return
    if not entries:
        print("No blocked issues")
        return
    for entry in entries:
        print(f"{_issue_line(entry.issue)} (blocked by: {', '.join(entry.open_blockers)})")


@app.command()
def graph(
    ctx: typer.Context,
    root: Annotated[str, typer.Argument(help="Start from this issue (default: all)")] = "",
    as_json: Annotated[bool, typer.Option("--json", help="Output JSON")] = False,
):
    """Show the blocking graph."""
    with _errors():
        _, store = _open(ctx)
        nodes = get_graph(store, root)

    if as_json:
        _print_json([n.to_dict() for n in nodes])
        return
    for node in nodes:
        print(f"{node.id} [{node.status}] {node.title}")
        for blocked_id in node.blocks:
            print(f"  -> {blocked_id}")


@app.command()
def update(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
    title: Annotated[Optional[str], typer.Option(help="New title")] = None,
    description: Annotated[Optional[str], typer.Option("--description", "-d", help="New description")] = None,
    priority: Annotated[Optional[int], typer.Option("--priority", "-p", help="New priority (0-4)")] = None,
    assignee: Annotated[Optional[str], typer.Option(help="New assignee ('' to clear)")] = None,
    issue_type: Annotated[Optional[str], typer.Option("--type", "-t", help="New type")] = None,
    status: Annotated[Optional[str], typer.Option(help="New status")] = None,
    defer: Annotated[Optional[str], typer.Option(help="Defer until date ('' to clear)")] = None,
    parent: Annotated[Optional[str], typer.Option(help="New parent ID ('' to clear)")] = None,
):
    """Update fields of an issue."""
    requested = {
        "title": title,
        "description": description,
        "priority": priority,
        "assignee": assignee,
        "type": issue_type,
        "status": status,
        "defer": defer,
        "parent": parent,
    }
    changes = {k: v for k, v in requested.items() if v is not None}
    if not changes:
        print("Error: Nothing to update")
        raise typer.Exit(code=1)

    with _errors():
        _, store = _open(ctx)
        issue = update_issue(
            store,
            issue_id,
            title=title,
            description=description,
            priority=priority,
            assignee=assignee,
            type=issue_type,
            status=status,
            defer_until=defer,
            parent=parent,
        )
        if parent:
            changes["parent"] = issue.parent
        store.commit(format_intent("update", issue.id, **{k: str(v) for k, v in changes.items()}))

    print(f"Updated {issue.id}")


@app.command()
def close(
    ctx: typer.Context,
    issue_ids: Annotated[List[str], typer.Argument(help="Issue ID(s) to close")],
    reason: Annotated[str, typer.Option(help="Why the issue was closed")] = "",
):
    """Close one or more issues."""
    with _errors():
        _, store = _open(ctx)
        for issue_id in issue_ids:
            issue = close_issue(store, issue_id, reason=reason)
            fields = {"reason": reason} if reason else {}
            store.commit(format_intent("close", issue.id, **fields))
            print(f"Closed {issue.id}: {issue.title}")

            for freed in newly_unblocked(store, issue.id):
                print(f"  Unblocked: {_issue_line(freed)}")


@app.command()
def reopen(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
):
    """Reopen a closed or in-progress issue."""
    with _errors():
        _, store = _open(ctx)
        issue = reopen_issue(store, issue_id)
        store.commit(format_intent("reopen", issue.id))
    print(f"Reopened {issue.id}")


@app.command()
def start(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
    assignee: Annotated[Optional[str], typer.Option(help="Assignee (default: git user.name)")] = None,
):
    """Claim an issue and mark it in progress."""
    with _errors():
        repo, store = _open(ctx)
        issue = start_issue(store, issue_id, assignee if assignee is not None else repo.user_name())
        store.commit(format_intent("start", issue.id, assignee=issue.assignee))
    print(f"Started {issue.id} (assignee: {issue.assignee})")


@app.command()
def defer(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
    until: Annotated[str, typer.Argument(help="Date to revisit (YYYY-MM-DD)")],
):
    """Defer an issue until a date."""
    with _errors():
        _, store = _open(ctx)
        issue = defer_issue(store, issue_id, until)
        store.commit(format_intent("defer", issue.id, "until", issue.defer_until))
    print(f"Deferred {issue.id} until {issue.defer_until}")


@app.command()
def undefer(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
):
    """Return a deferred issue to open."""
    with _errors():
        _, store = _open(ctx)
        issue = undefer_issue(store, issue_id)
        store.commit(format_intent("undefer", issue.id))
    print(f"Undeferred {issue.id}")


@app.command()
def link(
    ctx: typer.Context,
    blocker_id: Annotated[str, typer.Argument(help="Issue that blocks")],
    blocked_id: Annotated[str, typer.Argument(help="Issue that is blocked")],
):
    """Record that BLOCKER_ID blocks BLOCKED_ID."""
    with _errors():
        _, store = _open(ctx)
        blocker, blocked_issue = link_issues(store, blocker_id, blocked_id)
        store.commit(format_intent("link", blocker.id, "blocks", blocked_issue.id))
    print(f"{blocker.id} blocks {blocked_issue.id}")


@app.command()
def unlink(
    ctx: typer.Context,
    blocker_id: Annotated[str, typer.Argument(help="Issue that blocks")],
    blocked_id: Annotated[str, typer.Argument(help="Issue that is blocked")],
):
    """Remove a blocking relationship."""
    with _errors():
        _, store = _open(ctx)
        blocker, blocked_issue = unlink_issues(store, blocker_id, blocked_id)
        store.commit(format_intent("unlink", blocker.id, "blocks", blocked_issue.id))
    print(f"{blocker.id} no longer blocks {blocked_issue.id}")


@app.command()
def label(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
    add: Annotated[Optional[List[str]], typer.Option("--add", "-a", help="Label to add")] = None,
    remove: Annotated[Optional[List[str]], typer.Option("--remove", "-r", help="Label to remove")] = None,
):
    """Add or remove labels."""
    add = add or []
    remove = remove or []
    if not add and not remove:
        print("Error: Give at least one --add or --remove")
        raise typer.Exit(code=1)

    with _errors():
        _, store = _open(ctx)
        issue = label_issue(store, issue_id, add=add, remove=remove)
        parts = [f"+{name}" for name in add] + [f"-{name}" for name in remove]
        store.commit(format_intent("label", issue.id, *parts))
    print(f"Labels for {issue.id}: {', '.join(issue.labels) or '(none)'}")


@app.command()
def delete(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
    force: Annotated[bool, typer.Option("--force", help="Actually delete (default: preview only)")] = False,
):
    """Delete an issue, severing its links and orphaning its children."""
    with _errors():
        _, store = _open(ctx)
        if not force:
            plan = delete_preview(store, issue_id)
        else:
            plan = delete_issue(store, issue_id)
            store.commit(format_intent("delete", plan.issue.id))

    verb = "Deleted" if force else "Would delete"
    print(f"{verb} {_issue_line(plan.issue)}")
    if plan.blocks:
        print(f"  unblocks: {', '.join(plan.blocks)}")
    if plan.blocked_by:
        print(f"  drops links from: {', '.join(plan.blocked_by)}")
    if plan.children:
        print(f"  orphans: {', '.join(plan.children)}")
    if not force:
        print("Run with --force to delete")


@app.command()
def comment(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
    text: Annotated[str, typer.Argument(help="Comment text")],
    author: Annotated[Optional[str], typer.Option(help="Author (default: git user.name)")] = None,
):
    """Add a comment to an issue."""
    with _errors():
        repo, store = _open(ctx)
        issue = get_issue(store, issue_id)
        added = add_comment(store, issue.id, text, author=author if author is not None else repo.user_name())
        store.commit(format_intent("comment", issue.id, added.text, author=added.author))
    print(f"Added comment to {issue.id}")


@app.command()
def history(
    ctx: typer.Context,
    issue_id: Annotated[str, typer.Argument(help="Issue ID")],
    limit: Annotated[int, typer.Option(help="Show only the most recent N changes (0: all)")] = 0,
    as_json: Annotated[bool, typer.Option("--json", help="Output JSON")] = False,
):
    """Show the changes recorded for an issue, oldest first."""
    with _errors():
        repo, store = _open(ctx)
        issue = get_issue(store, issue_id)
        entries = repo.history(issue.id, limit=limit)

    if as_json:
        _print_json([e.to_dict() for e in entries])
        return
    if not entries:
        print("No history found")
        return
    for entry in entries:
        print(f"{entry.timestamp}  {entry.author}  {entry.intent}")


@app.command()
def config(
    ctx: typer.Context,
    key: Annotated[Optional[str], typer.Argument(help="Config key")] = None,
    value: Annotated[Optional[str], typer.Argument(help="New value")] = None,
):
    """Get or set repository config. With no arguments, list everything."""
    with _errors():
        repo, _ = _open(ctx)
        if key is None:
            for k, v in sorted(repo.list_config().items()):
                print(f"{k}={v}")
            return
        if value is None:
            current = repo.get_config(key)
            if current is None:
                print(f"Error: Config key '{key}' not set")
                raise typer.Exit(code=1)
            print(current)
            return
        if key == "default.priority":
            min_priority, max_priority = PRIORITY_RANGE
            if not value.isdigit() or not (min_priority <= int(value) <= max_priority):
                raise ValidationError(f"default.priority must be between {min_priority} and {max_priority}")
        repo.set_config(key, value)
        repo.commit(format_intent("config", **{key: value}))
    print(f"{key}={value}")


@app.command()
def sync(ctx: typer.Context):
    """Fetch, rebase and push the beadwork branch."""
    with _errors():
        repo, store = _open(ctx)
        status, intents = repo.sync()
        if status != SYNC_NEEDS_REPLAY:
            print(status)
            return

        result = replay_intents(store, intents)
        for failure in result.failures:
            print(f"Warning: {failure}")
        repo.push()

    print(f"replayed {len(result.applied)} of {len(intents)} changes and pushed")


@app.command(name="upgrade-repo")
def upgrade_repo_cmd(ctx: typer.Context):
    """Migrate the beadwork branch to the current schema version."""
    with _errors():
        repo, _ = _open(ctx, check_version=False)
        from_version, to_version = upgrade_repo(repo)
    if from_version == to_version:
        print(f"Already at version {to_version}")
    else:
        print(f"Upgraded repo v{from_version} -> v{to_version}")


def main():
    """Main CLI entry point."""
    app()
