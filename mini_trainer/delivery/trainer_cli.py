"""
Mini Trainer: terminal front-end.

A Rich terminal interface over the progress and gamification engine.

Commands:
- mini-trainer create   - Create the learner profile
- mini-trainer play     - Work through a theme level
- mini-trainer stats    - Show stars, levels and streak
- mini-trainer badges   - Show badges and progress
- mini-trainer daily    - Claim the daily (or bonus) challenge
- mini-trainer export   - Write a save game
- mini-trainer import   - Load a save game
- mini-trainer reset    - Delete the profile and all results
"""
from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Optional, TypeVar

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt
from rich.table import Table

from config import Settings, get_settings
from mini_trainer.content.loader import filter_exercises, levels_for_theme
from mini_trainer.core.models import Exercise, Profile
from mini_trainer.core.scoring import (
    calculate_global_level,
    get_level_progress,
    is_level_accessible,
    is_streak_at_risk,
    summarize_results,
)
from mini_trainer.errors import CreditOutcome, PersistenceError, ValidationError
from mini_trainer.gamification.badges import get_all_badges_with_progress, get_next_badges
from mini_trainer.gamification.notifications import NotificationQueue
from mini_trainer.session.controller import SessionController, SessionState, SessionView
from mini_trainer.storage.savegame import dump_save_game, save_game_filename

from .services import TrainerServices, build_services

T = TypeVar("T")


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="mini-trainer",
    help="Mini Trainer: practice exercises, earn stars and badges",
    no_args_is_help=True,
)
console = Console()

STYLES = {
    "correct": "bold green",
    "incorrect": "bold red",
    "info": "bold cyan",
    "warning": "bold yellow",
    "dim": "dim",
}


def configure_logging(settings: Settings) -> None:
    """Route loguru to stderr (and an optional rotating file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="1 MB",
            retention=5,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
        )


def _run(work: Callable[[TrainerServices], Awaitable[T]]) -> T:
    """Build the services, run one async command and always release them."""
    try:
        services = build_services(get_settings())
    except ValidationError as e:
        console.print(f"[red]Could not load content: {e}[/red]")
        raise typer.Exit(1)

    try:
        return asyncio.run(work(services))
    except PersistenceError as e:
        console.print(f"[red]Progress could not be saved: {e}[/red]")
        console.print("[dim]Your progress is kept for this run; try again later.[/dim]")
        raise typer.Exit(1)
    finally:
        services.close()


def _require_profile(services: TrainerServices) -> Profile:
    profile = services.profiles.profile
    if profile is None:
        console.print("[yellow]No profile yet.[/yellow] Create one with: mini-trainer create <nickname>")
        raise typer.Exit(1)
    return profile


# =============================================================================
# Display Helpers
# =============================================================================

def display_exercise(view: SessionView) -> None:
    exercise = view.exercise
    if exercise is None:
        return
    header = f"Exercise {view.current}/{view.total}  |  {exercise.type}  |  Level {exercise.level}"

    content = exercise.instruction or "(no instruction)"
    options = exercise.content.get("options")
    if isinstance(options, list):
        content += "\n\n" + "\n".join(f"  {i}. {opt}" for i, opt in enumerate(options, 1))
    if view.attempts:
        content += f"\n\n[dim]Attempt {view.attempts + 1}[/dim]"

    console.print(Panel(content, title=header, title_align="left", border_style="cyan", padding=(1, 2)))


def display_solution(exercise: Exercise) -> None:
    solution = exercise.content.get("solution", exercise.content.get("answer"))
    if solution is not None:
        console.print(Panel(str(solution), title="Solution", border_style="yellow"))


def drain_notifications(queue: NotificationQueue) -> None:
    while queue.current_badge is not None:
        badge = queue.current_badge
        console.print(f"\n{badge.icon} [bold magenta]New badge:[/bold magenta] {badge.name} - {badge.description}")
        queue.dismiss()
    if queue.level_up is not None:
        console.print(f"\n[bold green]Level up! You reached level {queue.level_up}.[/bold green]")
        queue.clear()


def _ask_answer(exercise: Exercise) -> bool:
    """Ask for an answer. Choice exercises are checked, everything else is self-graded."""
    options = exercise.content.get("options")
    correct_index = exercise.content.get("correctIndex")
    if isinstance(options, list) and isinstance(correct_index, int):
        choice = IntPrompt.ask("Your answer", choices=[str(i) for i in range(1, len(options) + 1)])
        return choice - 1 == correct_index
    return Confirm.ask("Did you solve it correctly?", default=True)


# =============================================================================
# Commands
# =============================================================================

@app.command()
def create(
    nickname: str = typer.Argument(..., help="Nickname (max 20 characters)"),
    avatar: str = typer.Option("", "--avatar", "-a", help="Avatar id"),
) -> None:
    """Create the learner profile."""

    async def work(services: TrainerServices) -> None:
        try:
            profile = await services.profiles.create_profile(nickname, avatar)
        except ValidationError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        console.print(f"[green]Welcome, {profile.nickname}![/green]")

    _run(work)


@app.command()
def play(
    theme: str = typer.Option(..., "--theme", "-t", help="Theme id"),
    level: int = typer.Option(1, "--level", "-l", help="Theme level (1-4)"),
    area: Optional[str] = typer.Option(None, "--area", help="Only exercises of this area"),
) -> None:
    """Work through the exercises of one theme level."""

    async def work(services: TrainerServices) -> None:
        profile = _require_profile(services)
        if not is_level_accessible(theme, level, profile.current_levels, services.theme_ids):
            console.print(f"[yellow]Level {level} of {theme} is still locked.[/yellow]")
            console.print(f"Unlocked so far: level {profile.level_for(theme)}")
            raise typer.Exit(1)

        exercises = filter_exercises(services.exercises, theme_id=theme, area_id=area, level=level)
        if not exercises:
            console.print(f"[red]No exercises for {theme} level {level}.[/red]")
            available = levels_for_theme(services.exercises, theme)
            if available:
                console.print(f"Available levels: {available}")
            raise typer.Exit(1)

        session = services.new_session()
        session.start_session(exercises, theme, area_id=area, profile_id=profile.id, level=level)
        await _play_loop(session, services.notifications)

    _run(work)


async def _play_loop(session: SessionController, notifications: NotificationQueue) -> None:
    try:
        while not session.is_completed:
            view = session.view()
            exercise = view.exercise
            if exercise is None:
                break
            console.print()
            display_exercise(view)

            start_time = time.monotonic()
            correct = _ask_answer(exercise)
            session.record_time(time.monotonic() - start_time)
            view = session.submit_answer(correct)

            if view.state == SessionState.SOLVED:
                stars = view.last_answer.score if view.last_answer else 0
                console.print(f"[{STYLES['correct']}]{exercise.feedback_correct or 'Correct!'}[/] " + "*" * stars)
                await session.next_exercise()
                credit = session.last_credit
                if credit is not None and credit.outcome == CreditOutcome.ALREADY_COMPLETED:
                    console.print("[dim]Already solved before, no new stars.[/dim]")
                drain_notifications(notifications)
            elif view.state == SessionState.RETRY:
                console.print(f"[{STYLES['incorrect']}]{exercise.feedback_incorrect or 'Not quite.'}[/]")
                if view.attempts - 1 < len(exercise.hints):
                    console.print(f"[{STYLES['info']}]Hint:[/] {exercise.hints[view.attempts - 1]}")
            elif view.state == SessionState.LEVEL_FAILED:
                console.print(f"[{STYLES['warning']}]Out of attempts - the level starts over.[/]")
                display_solution(exercise)
                if not Confirm.ask("Restart the level?", default=True):
                    await session.exit_level()
                    return
                session.restart_level()
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Session interrupted.[/yellow]")

    summary = await session.end_session()
    drain_notifications(notifications)
    if summary is None:
        return

    lines = [
        "[bold]Session Complete![/bold]\n",
        f"Exercises: {summary.stats.correct}/{summary.stats.total_exercises} solved",
        f"Stars earned: {summary.stats.stars_earned}",
        f"Time: {summary.stats.time_spent_seconds / 60:.1f} minutes",
    ]
    if summary.unlocked_level:
        lines.append(f"\n[green]Level {summary.unlocked_level} unlocked in {summary.theme_id}![/green]")
    console.print()
    console.print(Panel("\n".join(lines), title="Summary", border_style="green"))


@app.command()
def stats() -> None:
    """Show stars, levels and streak."""

    async def work(services: TrainerServices) -> None:
        profile = _require_profile(services)
        settings = services.settings
        progress = get_level_progress(profile.total_stars, settings.stars_per_level)
        results = await services.repository.results_for_profile(profile.id)
        summary = summarize_results(results)

        console.print(f"\n[bold cyan]{profile.nickname}[/bold cyan]")
        console.print("=" * 40)

        table = Table(show_header=False, box=None)
        table.add_column("Metric", style="dim")
        table.add_column("Value", style="bold")
        table.add_row("Total stars", str(profile.total_stars))
        table.add_row("Level", f"{progress.current_level} ({progress.stars_to_next_level} stars to next)")
        global_level = calculate_global_level(profile.current_levels, services.theme_ids, settings.max_theme_level)
        table.add_row("Theme level", str(global_level))
        streak = f"{profile.current_streak} days (best {profile.longest_streak})"
        if profile.current_streak and is_streak_at_risk(profile.last_active_date):
            streak += "  [yellow]practice today to keep it![/yellow]"
        table.add_row("Streak", streak)
        table.add_row("Badges", str(len(profile.badges)))
        table.add_row("Exercises logged", str(summary.total_exercises))
        table.add_row("Accuracy", f"{summary.overall_accuracy:.1f}%")
        console.print(table)

        if services.theme_ids:
            theme_table = Table()
            theme_table.add_column("Theme")
            theme_table.add_column("Level")
            theme_table.add_column("Progress")
            theme_table.add_column("Stars")
            for theme_id in services.theme_ids:
                theme_progress = profile.theme_progress.get(theme_id)
                theme_table.add_row(
                    theme_id,
                    str(profile.level_for(theme_id)),
                    f"{theme_progress.percentage:.0f}%" if theme_progress else "0%",
                    str(theme_progress.stars_earned) if theme_progress else "0",
                )
            console.print(theme_table)

    _run(work)


@app.command()
def badges() -> None:
    """Show all badges with progress."""

    async def work(services: TrainerServices) -> None:
        profile = _require_profile(services)
        definitions = services.profiles.badge_definitions

        table = Table(title="Badges")
        table.add_column("")
        table.add_column("Badge")
        table.add_column("Progress")
        table.add_column("Earned")
        for status in get_all_badges_with_progress(profile, definitions):
            progress = status.progress
            table.add_row(
                status.definition.icon,
                status.definition.name,
                f"{progress.current}/{progress.target} ({progress.percentage:.0f}%)",
                status.earned_at.strftime("%Y-%m-%d") if status.earned_at else "",
            )
        console.print(table)

        upcoming = get_next_badges(profile, definitions)
        if upcoming:
            console.print("\n[bold]Next up:[/bold] " + ", ".join(d.name for d in upcoming))

    _run(work)


@app.command()
def daily(
    bonus: bool = typer.Option(False, "--bonus", "-b", help="Claim the bonus challenge"),
) -> None:
    """Claim today's daily challenge."""

    async def work(services: TrainerServices) -> None:
        _require_profile(services)
        reward = await services.profiles.complete_daily_challenge(bonus=bonus)
        if reward.already_completed:
            console.print(f"[dim]Already done today ({reward.stars} stars).[/dim]")
        elif reward.stars == 0:
            console.print("[yellow]Finish the daily challenge first.[/yellow]")
        else:
            console.print(f"[green]+{reward.stars} stars![/green]")
            services.notifications.push_badges(reward.new_badges)
            drain_notifications(services.notifications)

    _run(work)


@app.command("export")
def export_save(
    output: Optional[Path] = typer.Option(None, "--out", "-o", help="Target file"),
) -> None:
    """Write a save game file."""

    async def work(services: TrainerServices) -> None:
        profile = _require_profile(services)
        payload = await services.profiles.export_save_game()
        target = output or Path.cwd() / save_game_filename(profile.nickname)
        target.write_text(dump_save_game(payload), encoding="utf-8")
        console.print(f"[green]Saved to {target}[/green]")

    _run(work)


@app.command("import")
def import_save(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Save game file"),
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Replace the profile with a save game."""
    if not confirm and not Confirm.ask("Replace the current profile with this save game?", default=False):
        raise typer.Exit(0)

    async def work(services: TrainerServices) -> None:
        try:
            profile = await services.profiles.import_save_game(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            console.print(f"[red]Save game rejected: {e}[/red]")
            raise typer.Exit(1)
        console.print(f"[green]Welcome back, {profile.nickname} ({profile.total_stars} stars)![/green]")

    _run(work)


@app.command()
def reset(
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete the profile and all results. This cannot be undone!"""
    if not confirm and not Confirm.ask("Delete the profile and ALL progress?", default=False):
        raise typer.Exit(0)

    async def work(services: TrainerServices) -> None:
        if await services.profiles.delete_profile():
            console.print("[green]Profile deleted.[/green]")
        else:
            console.print("[dim]No profile to delete.[/dim]")

    _run(work)


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
