"""Command line interface for feedcast."""

import json
import sys
import time
from typing import Optional

import click

from feedcast.app import FeedcastApp, build_app
from feedcast.cache.fingerprint import fingerprint as compute_fingerprint
from feedcast.config import FeedcastConfig
from feedcast.errors import BaseError
from feedcast.logging_config import configure_logging
from feedcast.metrics import start_metrics_server
from feedcast.models import ContentType
from feedcast.rss.options import SORT_ORDERS, FeedOptions
from feedcast.services.feed_service import validate_feed_slug


def _app(ctx: click.Context) -> FeedcastApp:
    """Build the application on first use and stop it when the command ends."""
    if "app" not in ctx.obj:
        app = build_app(ctx.obj["config"])
        ctx.obj["app"] = app
        ctx.call_on_close(app.stop)
    return ctx.obj["app"]


def _fail(error: BaseError) -> None:
    click.echo(json.dumps(error.to_dict(), indent=2, default=str), err=True)
    sys.exit(1)


def feed_options(func):
    """Add the render option flags shared by feed commands."""
    func = click.option("--transcripts", is_flag=True, help="Include transcript links")(func)
    func = click.option("--chapters", is_flag=True, help="Include chapter links")(func)
    func = click.option(
        "--sort", "sort_order", type=click.Choice(SORT_ORDERS), default="newest", show_default=True
    )(func)
    func = click.option("--max-episodes", type=int, default=None, help="Limit the item count")(func)
    func = click.option("--slug", default="default", show_default=True, help="Feed slug")(func)
    return func


def _build_options(max_episodes, sort_order, chapters, transcripts) -> FeedOptions:
    return FeedOptions(
        max_episodes=max_episodes,
        sort_order=sort_order,
        include_chapters=chapters,
        include_transcript=transcripts,
    )


@click.group()
@click.option(
    "--db",
    "database_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="SQLite database path (FEEDCAST_DATABASE_PATH)",
)
@click.option("--log-level", default=None, help="Log level (FEEDCAST_LOG_LEVEL)")
@click.option("--json-logs", is_flag=True, default=False, help="Emit JSON log lines")
@click.pass_context
def cli(ctx, database_path: Optional[str], log_level: Optional[str], json_logs: bool):
    """feedcast: podcast feeds from submitted content"""
    ctx.ensure_object(dict)
    try:
        config = FeedcastConfig.from_env()
    except BaseError as e:
        _fail(e)
    if database_path:
        config.database_path = database_path
    if log_level:
        config.log_level = log_level
    if json_logs:
        config.log_json = True
    configure_logging(config.log_level, json=config.log_json)
    ctx.obj["config"] = config


@cli.command()
@click.argument("content_url")
@click.option(
    "--type",
    "content_type",
    type=click.Choice([t.value for t in ContentType]),
    default=ContentType.URL.value,
    show_default=True,
)
@click.option("--note", default=None, help="Note stored with the submission")
@click.pass_context
def submit(ctx, content_url, content_type, note):
    """Submit content for conversion into an episode."""
    try:
        receipt = _app(ctx).submission_service.submit(
            {"content_url": content_url, "content_type": content_type, "user_note": note}
        )
    except BaseError as e:
        _fail(e)
    click.echo(receipt.model_dump_json(indent=2))


@cli.command()
@click.argument("submission_id")
@click.pass_context
def status(ctx, submission_id):
    """Show the status of a submission."""
    try:
        view = _app(ctx).submission_service.get_status(submission_id)
    except BaseError as e:
        _fail(e)
    click.echo(view.model_dump_json(indent=2))


@cli.command()
@click.argument("submission_id")
@click.pass_context
def start(ctx, submission_id):
    """Move a pending submission to processing."""
    try:
        submission = _app(ctx).submission_service.start_processing(submission_id)
    except BaseError as e:
        _fail(e)
    click.echo(f"Submission {submission.id} is {submission.status.value}")


@cli.command()
@click.argument("submission_id")
@click.option("--title", required=True, help="Episode title")
@click.option("--audio-url", required=True, help="URL of the episode audio")
@click.option("--duration", type=int, required=True, help="Duration in seconds")
@click.option("--description", default="", help="Episode description")
@click.pass_context
def complete(ctx, submission_id, title, audio_url, duration, description):
    """Publish the episode of a processing submission."""
    try:
        submission, episode = _app(ctx).submission_service.complete(
            submission_id,
            {
                "title": title,
                "description": description,
                "audio_url": audio_url,
                "duration_seconds": duration,
            },
        )
    except BaseError as e:
        _fail(e)
    click.echo(f"Submission {submission.id} completed with episode {episode.id}")


@cli.command()
@click.argument("submission_id")
@click.argument("error_message")
@click.pass_context
def fail(ctx, submission_id, error_message):
    """Mark a submission as failed."""
    try:
        submission = _app(ctx).submission_service.mark_failed(submission_id, error_message)
    except BaseError as e:
        _fail(e)
    click.echo(f"Submission {submission.id} is {submission.status.value}")


@cli.command("edit-episode")
@click.argument("episode_id")
@click.option("--title", help="New episode title")
@click.option("--description", help="New episode description")
@click.option("--audio-url", help="New audio URL")
@click.pass_context
def edit_episode(ctx, episode_id, title, description, audio_url):
    """Change a published episode and refresh its feed."""
    changes = {
        k: v
        for k, v in (("title", title), ("description", description), ("audio_url", audio_url))
        if v is not None
    }
    if not changes:
        raise click.UsageError("Nothing to change")
    try:
        episode = _app(ctx).feed_service.update_episode(episode_id, changes)
    except BaseError as e:
        _fail(e)
    click.echo(f"Episode {episode.id} updated in feed {episode.feed_slug}")


@cli.command("delete-episode")
@click.argument("episode_id")
@click.pass_context
def delete_episode(ctx, episode_id):
    """Remove a published episode from its feed."""
    try:
        episode = _app(ctx).feed_service.delete_episode(episode_id)
    except BaseError as e:
        _fail(e)
    click.echo(f"Episode {episode.id} deleted from feed {episode.feed_slug}")


@cli.command()
@feed_options
@click.option("--headers", is_flag=True, help="Print ETag and Last-Modified to stderr")
@click.pass_context
def feed(ctx, slug, max_episodes, sort_order, chapters, transcripts, headers):
    """Print the RSS document of a feed."""
    try:
        options = _build_options(max_episodes, sort_order, chapters, transcripts)
        result = _app(ctx).feed_service.get_feed(slug, options)
    except BaseError as e:
        _fail(e)
    if headers:
        click.echo(f'ETag: "{result.etag}"', err=True)
        click.echo(
            f"Last-Modified: {result.last_modified.strftime('%a, %d %b %Y %H:%M:%S GMT')}",
            err=True,
        )
    click.echo(result.content, nl=False)


@cli.command()
@click.option("--slug", default="default", show_default=True, help="Feed slug")
@click.option("--limit", type=int, default=50, show_default=True)
@click.option("--offset", type=int, default=0, show_default=True)
@click.pass_context
def episodes(ctx, slug, limit, offset):
    """List the episodes of a feed."""
    try:
        listing = _app(ctx).feed_service.list_episodes(slug, limit=limit, offset=offset)
    except BaseError as e:
        _fail(e)
    click.echo(listing.model_dump_json(indent=2))


@cli.command()
@feed_options
@click.pass_context
def fingerprint(ctx, slug, max_episodes, sort_order, chapters, transcripts):
    """Print the current fingerprint of a feed."""
    try:
        options = _build_options(max_episodes, sort_order, chapters, transcripts)
        validate_feed_slug(slug)
        app = _app(ctx)
        current = compute_fingerprint(app.episode_store.list_episodes(slug), options)
    except BaseError as e:
        _fail(e)
    click.echo(current)


@cli.command("serve-metrics")
@click.option("--port", type=int, default=None, help="Port (FEEDCAST_METRICS_PORT)")
@click.pass_context
def serve_metrics(ctx, port):
    """Expose Prometheus metrics and run the background tasks."""
    app = _app(ctx)
    port = port or ctx.obj["config"].metrics_port
    start_metrics_server(port)
    app.start()
    click.echo(f"Serving metrics on port {port}")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nShutting down...")


if __name__ == "__main__":
    cli()
