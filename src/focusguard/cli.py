"""CLI for the focusguard focus/exhaustion toolkit."""

import json
import logging
from datetime import timezone

import click


def _tz(utc: bool):
    return timezone.utc if utc else None


@click.group()
@click.option("--log-level", default="WARNING",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Logging verbosity.")
def main(log_level: str) -> None:
    """focusguard: focus scoring, interventions and exhaustion forecasts."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--output", "-o", default=None, help="Write the replay result as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Print every score snapshot.")
@click.option("--utc", is_flag=True, help="Evaluate hour-of-day rules in UTC instead of local time.")
@click.option("--training-out", default=None, type=click.Path(),
              help="Directory to store per-minute training snapshots in.")
def replay(file: str, output: str | None, verbose: bool, utc: bool, training_out: str | None) -> None:
    """Replay a recorded event log through a scoring session."""
    from focusguard.replay import replay_file

    result = replay_file(file, output, tz=_tz(utc), verbose=verbose)

    if training_out and result.training:
        from focusguard.forecast.trainer import TrainingSnapshotStore

        store = TrainingSnapshotStore(training_out)
        store.add_many(result.training)
        click.echo(f"{len(result.training)} training snapshots stored in {training_out}")


@main.command()
@click.option("--events", "-e", "events_path", default=None, type=click.Path(),
              help="JSONL event log to follow while running.")
@click.option("--history", default=None, type=click.Path(),
              help="History directory (kept in memory when omitted).")
@click.option("--duration", default=None, type=float, help="Stop after this many seconds.")
@click.option("--score-interval", default=30.0, show_default=True, help="Seconds between scores.")
@click.option("--poll-interval", default=0.5, show_default=True, help="Seconds between log polls.")
@click.option("--utc", is_flag=True, help="Evaluate hour-of-day rules in UTC instead of local time.")
def run(
    events_path: str | None,
    history: str | None,
    duration: float | None,
    score_interval: float,
    poll_interval: float,
    utc: bool,
) -> None:
    """Run a live scoring session, printing every score."""
    import asyncio

    from focusguard.scheduler import EventLogFollower, run_session
    from focusguard.session import FocusSession
    from focusguard.store import JsonlHistoryStore

    def notify(notice) -> None:
        kind = "URGENT" if notice.is_urgent else "mild"
        click.echo(f"  intervention ({kind}) at score {notice.score:.0f}")

    def on_tick(snapshot) -> None:
        click.echo(f"[{snapshot.timestamp:.0f}] score {snapshot.score:.0f}")

    store = JsonlHistoryStore(history) if history else None
    session = FocusSession(store=store, notify=notify, tz=_tz(utc))
    follower = EventLogFollower(session, events_path, poll_interval) if events_path else None

    async def drive() -> None:
        task = asyncio.create_task(follower.run()) if follower else None
        try:
            await run_session(session, duration=duration, score_interval=score_interval,
                              on_tick=on_tick)
        finally:
            if task is not None:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    try:
        asyncio.run(drive())
    except KeyboardInterrupt:
        click.echo("Interrupted.")
    if follower is not None:
        click.echo(f"Stopped: {follower.events} events ingested, {follower.dropped} dropped")


@main.command()
@click.option("--count", "-n", default=1000, help="Number of minutes to synthesise.")
@click.option("--output", "-o", required=True, type=click.Path(), help="Training data directory.")
@click.option("--seed", default=None, type=int, help="Random seed.")
@click.option("--utc", is_flag=True, help="Use UTC hours for the time-of-day pattern.")
def synthesize(count: int, output: str, seed: int | None, utc: bool) -> None:
    """Generate synthetic training snapshots."""
    from focusguard.forecast.trainer import TrainingSnapshotStore, generate_synthetic_data

    data = generate_synthetic_data(count, seed=seed, tz=_tz(utc))
    store = TrainingSnapshotStore(output)
    store.add_many(data)
    click.echo(f"Wrote {len(data)} snapshots to {output} ({len(store)} stored)")


def _service(data: str, model: str | None):
    from focusguard.forecast.trainer import ModelTrainer, TrainingSnapshotStore
    from focusguard.forecast.worker import ForecastService

    service = ForecastService(
        trainer=ModelTrainer(store=TrainingSnapshotStore(data)),
        model_path=model,
    )
    service.initialize()
    return service


@main.command()
@click.option("--data", "-d", required=True, type=click.Path(), help="Training data directory.")
@click.option("--model", "-m", default=None, type=click.Path(), help="Where to save the model (.npz).")
@click.option("--pretrain", is_flag=True, help="Pre-train on synthetic data when there is not enough real data.")
@click.option("--seed", default=None, type=int, help="Random seed for pre-training.")
def train(data: str, model: str | None, pretrain: bool, seed: int | None) -> None:
    """Fit the forecasting model on stored snapshots."""
    service = _service(data, model)
    result = service.train_model(pretrain_if_needed=pretrain, seed=seed)
    if not result.success:
        click.echo(f"Training skipped: need at least 200 snapshots, have {len(service.trainer.store)}.")
        raise SystemExit(1)
    click.echo(f"Trained on {result.data_points} sequences: "
               f"loss={result.final_loss:.4f} mae={result.final_mae:.4f}")
    if model:
        click.echo(f"Model written to {model}")


@main.command()
@click.option("--data", "-d", required=True, type=click.Path(), help="Training data directory.")
@click.option("--model", "-m", default=None, type=click.Path(), help="Saved model (.npz).")
@click.option("--insight", is_flag=True, help="Print a full insight instead of the bare prediction.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON.")
def forecast(data: str, model: str | None, insight: bool, as_json: bool) -> None:
    """Predict the exhaustion score 30 minutes ahead."""
    service = _service(data, model)

    if insight:
        result = service.generate_insight()
        if as_json:
            click.echo(json.dumps(result.to_dict(), indent=2))
            return
        click.echo(result.title)
        click.echo(result.message)
        for action in result.actions:
            click.echo(f"  - {action}")
        return

    prediction = service.predict()
    if as_json:
        click.echo(json.dumps(prediction.to_dict(), indent=2))
        return

    ttt = prediction.time_to_threshold
    click.echo(f"\n{'=' * 50}")
    click.echo(f"  Predicted score:   {prediction.predicted_score:.0f}/100 "
               f"({'model' if prediction.model_based else 'trend'})")
    click.echo(f"  Confidence:        {prediction.confidence:.0%}")
    click.echo(f"  Time to threshold: {'never' if ttt == float('inf') else f'{ttt:.0f} min'}")
    click.echo(f"  Trend / risk:      {prediction.trend.value} / {prediction.risk_level.value}")
    click.echo(f"  {prediction.recommendation}")
    click.echo(f"{'=' * 50}")


@main.command()
@click.option("--data", "-d", required=True, type=click.Path(), help="Training data directory.")
@click.option("--model", "-m", default=None, type=click.Path(), help="Saved model (.npz).")
def status(data: str, model: str | None) -> None:
    """Show training data and model status."""
    service = _service(data, model)
    click.echo(json.dumps(service.get_status(), indent=2))


if __name__ == "__main__":
    main()
