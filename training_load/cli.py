"""Command-line interface for the training load engine."""

import logging
from datetime import date, datetime, timedelta

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.panel import Panel
from rich import box

from .config import config
from .analysis import run_pipeline
from .analysis.model import classify_plan_week, forecast, generate_weekly_plan, project_load, series_to_frame
from .analysis.peaks import LOOKBACK_1Y, LOOKBACK_90D, LOOKBACK_ALL, PeakCurveAnalyzer, format_interval, format_pace, speed_to_pace
from .analysis.performance import predict_race_time
from .analysis.stress import compute_tss, zone_distribution
from .analysis.types import Activity, AthleteSettings, DailyLoadPoint, Metric, Sport, SportSettings, WellnessSample
from .db import ActivityRepository, Database, MetricRepository, SettingsRepository, WellnessRepository

console = Console()

LOOKBACKS = {"90d": LOOKBACK_90D, "1y": LOOKBACK_1Y, "all": LOOKBACK_ALL}

FORM_STYLES = {
    "overload": "red",
    "productive": "yellow",
    "maintenance": "blue",
    "peak": "green",
    "detraining": "magenta",
}

ALERT_STYLES = {
    "critical": "bold red",
    "warning": "yellow",
    "info": "blue",
    "good": "green",
}


def _database(ctx: click.Context) -> Database:
    db = ctx.obj.get("db")
    if db is None:
        db = Database(ctx.obj.get("database_url"))
        db.create_tables()
        ctx.obj["db"] = db
    return db


def _parse_day(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise click.BadParameter(f"'{value}' is not a YYYY-MM-DD date")


def _pipeline(ctx: click.Context, today: date):
    db = _database(ctx)
    activities = ActivityRepository(db).list_activities()
    if not activities:
        raise click.ClickException("No activities stored. Add or sync activities first.")
    settings = SettingsRepository(db).load()
    wellness = WellnessRepository(db).list_samples()
    return run_pipeline(activities, settings, wellness, today=today)


def _last_history_point(result, today: date) -> DailyLoadPoint:
    history = [point for point in result.load_series if point.day <= today and not point.is_projection]
    if not history:
        raise click.ClickException(f"No load history on or before {today.isoformat()}")
    return history[-1]


def _print_projection(title: str, projection, weekly_plan=None, labels=None):
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Week ending", style="black")
    if weekly_plan is not None:
        table.add_column("TSS", style="magenta")
        table.add_column("Block")
    table.add_column("Fitness", style="blue")
    table.add_column("Fatigue", style="red")
    table.add_column("Form", style="green")
    for week, point in enumerate(projection[6::7]):
        row = point.rounded()
        cells = [row["date"]]
        if weekly_plan is not None:
            cells += [str(weekly_plan[week]), labels[week]]
        cells += [f"{row['ctl']:.1f}", f"{row['atl']:.1f}", f"{row['tsb']:.1f}"]
        table.add_row(*cells)
    console.print(table)


@click.group()
@click.option("--database-url", envvar="DATABASE_URL", default=None, help="SQLAlchemy database URL")
@click.option("--log-level", default=None, help="Logging level (defaults to LOG_LEVEL)")
@click.pass_context
def cli(ctx, database_url, log_level):
    """Training load analysis: TSS, fitness/fatigue, peak curves and readiness."""
    logging.basicConfig(
        level=(log_level or config.LOG_LEVEL).upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url or config.DATABASE_URL


@cli.command("init-db")
@click.option("--reset", is_flag=True, help="Drop all stored data first")
@click.pass_context
def init_db(ctx, reset):
    """Create database tables."""
    db = _database(ctx)
    if reset:
        click.confirm("This deletes all activities, wellness and metrics. Continue?", abort=True)
        db.reset()
    console.print("[green]✅ Database initialized[/green]")


@cli.command("add-activity")
@click.option("--id", "activity_id", required=True, help="Activity id")
@click.option("--name", default="", help="Activity name")
@click.option("--type", "activity_type", default="Run", help="Provider activity type (Run, Ride, ...)")
@click.option("--date", "day", required=True, help="Start date (YYYY-MM-DD)")
@click.option("--duration", type=float, required=True, help="Duration in minutes")
@click.option("--hr", type=float, default=0.0, help="Average heart rate")
@click.option("--speed", type=float, default=0.0, help="Average speed in m/s")
@click.option("--watts", type=float, default=0.0, help="Average power")
@click.option("--distance", type=float, default=0.0, help="Distance in meters")
@click.pass_context
def add_activity(ctx, activity_id, name, activity_type, day, duration, hr, speed, watts, distance):
    """Store a manually entered activity."""
    db = _database(ctx)
    activity = Activity(
        id=activity_id,
        name=name,
        start=datetime.combine(_parse_day(day), datetime.min.time()),
        sport=Sport.from_provider(activity_type),
        duration_min=duration,
        hr_avg=hr,
        speed_avg=speed,
        watts_avg=watts,
        distance_m=distance,
    )
    created = ActivityRepository(db).upsert_activity(activity, activity_type)
    tss = compute_tss(activity, SettingsRepository(db).load())
    verb = "Added" if created else "Updated"
    console.print(f"[green]✅ {verb} activity {activity_id} ({activity.sport.value}, TSS {tss})[/green]")


@cli.command("add-wellness")
@click.option("--date", "day", required=True, help="Day (YYYY-MM-DD)")
@click.option("--hrv", type=float, default=None, help="HRV in ms")
@click.option("--sleep", type=float, default=None, help="Sleep in hours")
@click.option("--rhr", type=float, default=None, help="Resting heart rate")
@click.pass_context
def add_wellness(ctx, day, hrv, sleep, rhr):
    """Store one day of wellness data."""
    sample = WellnessSample(day=_parse_day(day), hrv=hrv, sleep_hours=sleep, resting_hr=rhr)
    WellnessRepository(_database(ctx)).save_sample(sample)
    console.print(f"[green]✅ Saved wellness for {sample.day.isoformat()}[/green]")


@cli.command()
@click.option("--run-lthr", type=float, help="Running lactate threshold HR")
@click.option("--run-max-hr", type=float, help="Running max HR")
@click.option("--bike-lthr", type=float, help="Cycling lactate threshold HR")
@click.option("--bike-max-hr", type=float, help="Cycling max HR")
@click.option("--weight", type=float, help="Body weight in kg")
@click.option("--resting-hr", type=float, help="Resting HR")
@click.pass_context
def settings(ctx, run_lthr, run_max_hr, bike_lthr, bike_max_hr, weight, resting_hr):
    """Show or update athlete settings."""
    db = _database(ctx)
    repository = SettingsRepository(db)
    current = repository.load()

    updates = (run_lthr, run_max_hr, bike_lthr, bike_max_hr, weight, resting_hr)
    if any(value is not None for value in updates):
        current = AthleteSettings(
            run=SportSettings(
                run_lthr if run_lthr is not None else current.run.lthr,
                run_max_hr if run_max_hr is not None else current.run.max_hr,
                current.run.zones,
            ),
            bike=SportSettings(
                bike_lthr if bike_lthr is not None else current.bike.lthr,
                bike_max_hr if bike_max_hr is not None else current.bike.max_hr,
                current.bike.zones,
            ),
            weight_kg=weight if weight is not None else current.weight_kg,
            resting_hr=resting_hr if resting_hr is not None else current.resting_hr,
        )
        repository.save(current)
        db.clear_derived()
        console.print("[green]✅ Settings saved; all derived metrics will be recomputed[/green]")

    table = Table(title="Athlete Settings", box=box.ROUNDED)
    table.add_column("Setting", style="black")
    table.add_column("Run", style="green")
    table.add_column("Bike", style="blue")
    table.add_row("LTHR", f"{current.run.lthr:.0f}", f"{current.bike.lthr:.0f}")
    table.add_row("Max HR", f"{current.run.max_hr:.0f}", f"{current.bike.max_hr:.0f}")
    for index, (run_zone, bike_zone) in enumerate(zip(current.run.zones, current.bike.zones), start=1):
        table.add_row(f"Z{index}", f"{run_zone[0]}-{run_zone[1]}", f"{bike_zone[0]}-{bike_zone[1]}")
    console.print(table)
    console.print(f"Weight: {current.weight_kg:.1f} kg  •  Resting HR: {current.resting_hr:.0f}  •  Version: {current.fingerprint()}")


@cli.command()
@click.pass_context
def status(ctx):
    """Show database statistics."""
    console.print(Panel.fit("ℹ️  System Status", style="bold blue"))
    db = _database(ctx)
    counts = db.table_counts()
    without_streams = ActivityRepository(db).ids_without_streams()
    metrics = MetricRepository(db)
    latest = metrics.latest()

    console.print(f"  • Activities: {counts['activities']} ({counts['activities'] - len(without_streams)} with streams)")
    console.print(f"  • Wellness days: {counts['wellness']}")
    if latest:
        current = metrics.stored_version() == SettingsRepository(db).load().fingerprint()
        console.print(
            f"  • Last analysis: {latest['date']} "
            f"(CTL {latest['fitness']:.1f}, ATL {latest['fatigue']:.1f}, TSB {latest['form']:.1f})"
            + ("" if current else " [yellow]stale, settings changed[/yellow]")
        )
    else:
        console.print("  • Last analysis: none")
    console.print(f"  • Provider token: {'set' if config.STRAVA_ACCESS_TOKEN else 'not set'}")


@cli.command()
@click.option("--days", default=14, help="Number of days to show")
@click.option("--today", "today_str", default=None, help="Reference day (YYYY-MM-DD)")
@click.option("--export", type=click.Path(dir_okay=False), default=None, help="Write the load series to CSV")
@click.pass_context
def analyze(ctx, days, today_str, export):
    """Calculate fitness, fatigue and form."""
    today = _parse_day(today_str) if today_str else date.today()
    result = _pipeline(ctx, today)
    db = _database(ctx)
    ActivityRepository(db).save_tss(result.activities)
    MetricRepository(db).save_series(result.load_series, result.readiness, result.settings_version)

    table = Table(title=f"{days}-Day Training Load", box=box.ROUNDED)
    table.add_column("Date", style="black")
    table.add_column("TSS", style="magenta")
    table.add_column("Fitness", style="blue")
    table.add_column("Fatigue", style="red")
    table.add_column("Form", style="green")
    for point in result.load_series[-days:]:
        row = point.rounded()
        table.add_row(row["date"], str(row["daily_tss"]), f"{row['ctl']:.1f}", f"{row['atl']:.1f}", f"{row['tsb']:.1f}")
    console.print(table)

    stats = result.statistics
    if stats is not None:
        style = FORM_STYLES.get(stats.form.value, "white")
        outlook = forecast(stats)
        summary = (
            f"CTL {stats.ctl:.1f}  ATL {stats.atl:.1f}  TSB [{style}]{stats.tsb:.1f} ({stats.form.value})[/{style}]\n"
            f"Ramp rate {stats.ramp_rate:+.1f}/week ({stats.phase.value})  •  ACWR {stats.acwr:.2f}\n"
            f"Weekly TSS {stats.weekly_tss:.0f}  •  Monotony {stats.monotony:.2f}  •  Strain {stats.strain:.0f}\n"
            f"CTL 30 days ago {stats.past_ctl:.1f}  •  28-day outlook {outlook['ctl']:.1f} ({outlook['trend']})"
        )
        if outlook["next_level"] is not None:
            summary += f"\nCTL {outlook['next_level']} reachable in {outlook['next_level_days']} days at the current load"
        console.print(Panel(summary, title="📊 Current State", style="bold"))

    for alert in result.alerts:
        style = ALERT_STYLES.get(alert.level, "white")
        console.print(f"[{style}]{alert.title}: {alert.message}[/{style}]")

    if export:
        series_to_frame(result.load_series).to_csv(export)
        console.print(f"[green]✅ Exported {len(result.load_series)} days to {export}[/green]")


@cli.command()
@click.option("--scope", type=click.Choice(["all", "bike", "run"]), default="all", help="Sport scope")
@click.option("--lookback", type=click.Choice(sorted(LOOKBACKS)), default="all", help="History to include")
@click.option("--today", "today_str", default=None, help="Reference day (YYYY-MM-DD)")
@click.pass_context
def peaks(ctx, scope, lookback, today_str):
    """Show mean-maximal heart rate and speed curves."""
    today = _parse_day(today_str) if today_str else date.today()
    result = _pipeline(ctx, today)
    records = PeakCurveAnalyzer().compute(result.activities, scope, LOOKBACKS[lookback], today)
    if not records:
        console.print("[yellow]No activities with usable streams in this range.[/yellow]")
        return

    table = Table(title=f"Peak Curves ({scope}, {lookback})", box=box.ROUNDED)
    table.add_column("Window", style="black")
    table.add_column("Metric", style="blue")
    table.add_column("Best", style="green")
    table.add_column("Activity")
    table.add_column("Date", style="black")
    for record in records:
        if record.metric == Metric.HEART_RATE:
            value = f"{record.value:.0f} bpm"
        elif scope == "run":
            value = f"{format_pace(speed_to_pace(record.value))} /km"
        else:
            value = f"{record.value * 3.6:.1f} km/h"
        table.add_row(
            format_interval(record.window_s),
            record.metric.value,
            value,
            record.activity_name or record.activity_id,
            record.activity_date.isoformat(),
        )
    console.print(table)


@cli.command()
@click.option("--today", "today_str", default=None, help="Reference day (YYYY-MM-DD)")
@click.pass_context
def vo2max(ctx, today_str):
    """Estimate VO2max for running and cycling."""
    today = _parse_day(today_str) if today_str else date.today()
    result = _pipeline(ctx, today)

    table = Table(title="VO2max Estimates", box=box.ROUNDED)
    table.add_column("Sport", style="black")
    table.add_column("VO2max", style="green")
    table.add_column("Method", style="blue")
    table.add_column("Source")
    for sport, estimate in result.vo2max.items():
        if estimate is None:
            table.add_row(sport.value, "-", "-", "no qualifying activity")
            continue
        source = estimate.activity_id or "athlete settings"
        label = f"{estimate.value:.1f}" + (" (est.)" if estimate.is_estimated else "")
        table.add_row(sport.value, label, estimate.method, source)
    console.print(table)


@cli.command()
@click.option("--days", default=7, help="Number of days to show")
@click.option("--today", "today_str", default=None, help="Reference day (YYYY-MM-DD)")
@click.pass_context
def readiness(ctx, days, today_str):
    """Show the daily readiness score."""
    today = _parse_day(today_str) if today_str else date.today()
    result = _pipeline(ctx, today)
    if result.wellness_simulated:
        console.print("[yellow]⚠️  No wellness data stored; scores use simulated wellness.[/yellow]")

    table = Table(title="Readiness", box=box.ROUNDED)
    table.add_column("Date", style="black")
    table.add_column("Score", style="green")
    table.add_column("Level")
    table.add_column("Penalties", style="red")
    for sample in result.readiness[-days:]:
        penalties = ", ".join(f"{name} -{points:.0f}" for name, points in sample.penalties.items() if points)
        table.add_row(sample.day.isoformat(), f"{sample.score:.0f}", sample.level, penalties or "-")
    console.print(table)


@cli.command()
@click.option("--days", default=28, help="Number of days to include")
@click.option("--today", "today_str", default=None, help="Reference day (YYYY-MM-DD)")
@click.pass_context
def zones(ctx, days, today_str):
    """Show time in heart-rate zones and the polarisation split."""
    today = _parse_day(today_str) if today_str else date.today()
    db = _database(ctx)
    activities = ActivityRepository(db).list_activities(since=today - timedelta(days=days))
    distribution = zone_distribution(activities, SettingsRepository(db).load())

    table = Table(title=f"Time in Zone ({days} days)", box=box.ROUNDED)
    table.add_column("Zone", style="black")
    table.add_column("Minutes", style="green")
    for index, seconds in enumerate(distribution["seconds"], start=1):
        table.add_row(f"Z{index}", f"{seconds / 60:.0f}")
    console.print(table)

    split = distribution["polarization"]
    if split:
        console.print(f"Low {split['low']}%  •  Threshold {split['threshold']}%  •  High {split['high']}%")


@cli.command()
@click.option("--weekly-tss", required=True, help="Comma-separated planned TSS per week, e.g. 300,350,400")
@click.option("--today", "today_str", default=None, help="Reference day (YYYY-MM-DD)")
@click.pass_context
def project(ctx, weekly_tss, today_str):
    """Project fitness and form from a weekly TSS plan."""
    try:
        plan = [float(value) for value in weekly_tss.split(",") if value.strip()]
    except ValueError:
        raise click.BadParameter("weekly TSS must be comma-separated numbers", param_hint="--weekly-tss")

    today = _parse_day(today_str) if today_str else date.today()
    result = _pipeline(ctx, today)
    projection = project_load(_last_history_point(result, today), plan)
    _print_projection("Projected Load", projection)


@cli.command()
@click.option("--target", "target_tss", type=float, default=500, help="Weekly TSS to build towards")
@click.option("--weeks", default=12, help="Plan length in weeks")
@click.option("--race", "races", multiple=True, help="A race date (YYYY-MM-DD); repeat for several")
@click.option("--today", "today_str", default=None, help="Reference day (YYYY-MM-DD)")
@click.pass_context
def plan(ctx, target_tss, weeks, races, today_str):
    """Generate a periodised weekly TSS plan and project its effect."""
    if weeks <= 0:
        raise click.BadParameter("must be positive", param_hint="--weeks")
    race_days = [_parse_day(value) for value in races]

    today = _parse_day(today_str) if today_str else date.today()
    result = _pipeline(ctx, today)
    last = _last_history_point(result, today)

    stats = result.statistics
    start_tss = stats.avg_tss_7d * 7 if stats is not None and stats.avg_tss_7d > 0 else 300
    weekly_plan = generate_weekly_plan(start_tss, target_tss, weeks, last.day + timedelta(days=1), race_days)
    labels = [
        classify_plan_week(tss, weekly_plan[week - 1] if week > 0 else None)
        for week, tss in enumerate(weekly_plan)
    ]

    console.print(f"Starting from {start_tss:.0f} TSS/week, building towards {target_tss:.0f}")
    _print_projection(f"{weeks}-Week Plan", project_load(last, weekly_plan), weekly_plan, labels)


def _format_race_time(minutes: float) -> str:
    hours = int(minutes // 60)
    rest = int(minutes % 60)
    return f"{hours}h {rest}m" if hours > 0 else f"{rest}m"


@cli.command()
@click.option("--sport", type=click.Choice(["run", "bike"]), default="run", help="Race sport")
@click.option("--distance", type=float, default=None, help="Race distance in km (half marathon / 90 km by default)")
@click.option("--today", "today_str", default=None, help="Reference day (YYYY-MM-DD)")
@click.pass_context
def predict(ctx, sport, distance, today_str):
    """Predict a race time from the fastest recent sessions."""
    today = _parse_day(today_str) if today_str else date.today()
    result = _pipeline(ctx, today)
    stats = result.statistics
    ctl = stats.ctl if stats is not None else 0.0
    tsb = stats.tsb if stats is not None else 0.0

    prediction = predict_race_time(
        result.activities, Sport(sport), ctl, tsb, distance * 1000 if distance else None
    )
    if prediction is None:
        console.print(f"[yellow]Need at least 3 {sport} sessions longer than 20 minutes with a distance.[/yellow]")
        return

    if prediction.sport == Sport.RUN:
        pace = f"{format_pace(prediction.pace_min_km)} /km"
    else:
        pace = f"{prediction.speed_kmh:.1f} km/h"
    console.print(Panel(
        f"{prediction.distance_m / 1000:.1f} km in [bold]{_format_race_time(prediction.time_min)}[/bold] ({pace})\n"
        f"Based on your {prediction.sessions_used} best sessions  •  "
        f"CTL {ctl:.1f}, TSB {tsb:.1f}, exponent {prediction.exponent}",
        title="🏁 Race Prediction",
        style="bold",
    ))


@cli.command()
@click.option("--days", default=30, help="Number of days to sync")
@click.pass_context
def sync(ctx, days):
    """Sync activity summaries from Strava."""
    from .api import StravaClient
    from requests.exceptions import RequestException

    try:
        config.validate()
    except ValueError as e:
        raise click.ClickException(str(e))

    try:
        fetched, new = StravaClient().sync_activities(ActivityRepository(_database(ctx)), days_back=days)
    except RequestException as e:
        raise click.ClickException(f"Strava request failed: {e}")
    console.print(f"[green]✅ Synced {fetched} activities ({new} new)[/green]")


@cli.command("fetch-streams")
@click.option("--limit", default=50, help="Maximum activities to fetch")
@click.option("--delay", type=float, default=None, help="Seconds between requests")
@click.pass_context
def fetch_streams(ctx, limit, delay):
    """Fetch missing 1 Hz streams from Strava."""
    from .api import StravaClient, StreamBackfill

    try:
        config.validate()
    except ValueError as e:
        raise click.ClickException(str(e))

    repository = ActivityRepository(_database(ctx))
    missing = repository.ids_without_streams()[:limit]
    if not missing:
        console.print("[green]✅ All activities have streams[/green]")
        return

    backfill = StreamBackfill(StravaClient(), delay=delay)
    with console.status(f"[black]Fetching streams for {len(missing)} activities...[/black]"):
        report = backfill.run(missing, repository.attach_streams)

    console.print(
        f"[green]✅ {len(report.fetched)} fetched[/green], "
        f"{len(report.missing)} without streams, [red]{len(report.failed)} failed[/red]"
    )


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
