#!/usr/bin/env python3
"""
Training Load Model Validation Script

Cross-checks the CTL/ATL recursion of BanisterModel against pandas'
exponentially weighted mean with alpha = 1 / time constant and no bias
adjustment. Both start from the first day's load, so the two must agree to
floating point precision.

Runs on the stored activity history, or on a synthetic load series with
--synthetic.
"""

import sys
import numpy as np
import pandas as pd
from datetime import date, timedelta

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from training_load.analysis.model import BanisterModel, compute_load_series
from training_load.analysis.stress import annotate_tss
from training_load.db import ActivityRepository, SettingsRepository, get_db


class TrainingLoadValidator:
    """Compare the recursion with the pandas EWM reference."""

    def __init__(self, chronic_window: float = 42, acute_window: float = 7):
        self.console = Console()
        self.chronic_window = chronic_window
        self.acute_window = acute_window

    def stored_loads(self) -> pd.Series:
        """Daily TSS of the stored history, gap-free."""
        db = get_db()
        activities = ActivityRepository(db).list_activities()
        annotated = annotate_tss(activities, SettingsRepository(db).load())
        series = compute_load_series(annotated, self.chronic_window, self.acute_window)
        return pd.Series(
            [point.daily_tss for point in series],
            index=pd.DatetimeIndex([pd.Timestamp(point.day) for point in series]),
            dtype=float,
        )

    @staticmethod
    def synthetic_loads(days: int = 180, seed: int = 7) -> pd.Series:
        """Periodized load pattern with rest days and noise."""
        rng = np.random.default_rng(seed)
        week = np.array([60, 80, 0, 90, 50, 150, 0], dtype=float)
        loads = np.resize(week, days) * rng.uniform(0.8, 1.2, days)
        start = date.today() - timedelta(days=days - 1)
        return pd.Series(loads, index=pd.date_range(start, periods=days, freq="D"))

    def compare(self, loads: pd.Series) -> pd.DataFrame:
        model = BanisterModel(self.chronic_window, self.acute_window)
        ctl, atl, tsb = model.impulse_response(loads.values)

        ref_ctl = loads.ewm(alpha=1 / self.chronic_window, adjust=False).mean().values
        ref_atl = loads.ewm(alpha=1 / self.acute_window, adjust=False).mean().values

        rows = []
        for metric, ours, reference in (
            ("CTL", ctl, ref_ctl),
            ("ATL", atl, ref_atl),
            ("TSB", tsb, ref_ctl - ref_atl),
        ):
            diff = np.abs(ours - reference)
            rows.append({
                "metric": metric,
                "max_abs_error": float(np.max(diff)),
                "final_ours": float(ours[-1]),
                "final_reference": float(reference[-1]),
            })
        return pd.DataFrame(rows)

    def print_results(self, stats: pd.DataFrame, tolerance: float) -> bool:
        table = Table(title="BanisterModel vs pandas EWM", border_style="green")
        table.add_column("Metric", style="cyan")
        table.add_column("Max Error", style="red")
        table.add_column("Final (ours)", style="green")
        table.add_column("Final (EWM)", style="yellow")
        table.add_column("Status", style="bold")

        passed = True
        for _, row in stats.iterrows():
            ok = row["max_abs_error"] <= tolerance
            passed = passed and ok
            table.add_row(
                row["metric"],
                f"{row['max_abs_error']:.2e}",
                f"{row['final_ours']:.2f}",
                f"{row['final_reference']:.2f}",
                "[green]PASS[/green]" if ok else "[red]FAIL[/red]",
            )
        self.console.print(table)
        return passed


@click.command()
@click.option("--synthetic", is_flag=True, help="Validate on a synthetic load series")
@click.option("--days", default=180, help="Length of the synthetic series")
@click.option("--tolerance", default=1e-9, help="Maximum absolute difference allowed")
def main(synthetic, days, tolerance):
    """Training load model validation."""
    validator = TrainingLoadValidator()
    validator.console.print(Panel.fit(
        "[bold blue]Training Load Model Validation[/bold blue]\n"
        "[dim]CTL/ATL recursion against an exponentially weighted mean[/dim]",
        border_style="blue"
    ))

    loads = validator.synthetic_loads(days) if synthetic else validator.stored_loads()
    if loads.empty:
        validator.console.print("[red]No training data found for validation[/red]")
        sys.exit(1)

    validator.console.print(f"[green]Validating {len(loads)} days with {loads.sum():.0f} total TSS[/green]")
    if not validator.print_results(validator.compare(loads), tolerance):
        sys.exit(1)
    validator.console.print("[green bold]✓ VALIDATION SUCCESSFUL[/green bold]")


if __name__ == "__main__":
    main()
