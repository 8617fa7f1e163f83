"""CLI interface for Word Drill.

Usage:
    python -m word_drill drill                 Start a timed drill session
    python -m word_drill add "字" "zì"          Add a word to the bank
    python -m word_drill due                   Show how many reviews are due
    python -m word_drill plans                 List review plans by status
    python -m word_drill stats                 Show your statistics
    python -m word_drill review WORD_ID        Practice one word's review stage
    python -m word_drill review WORD_ID --test Take the stage's review test
"""

import argparse
import asyncio
import logging
from collections.abc import Callable

from backend.database import engine as db_engine
from backend.errors import EmptyWordSet
from backend.models import Base
from backend.srs.modes import parse_mode
from backend.srs.schedule import find_stage, progress_visualization
from backend.srs.session import SessionEngine, SessionResults, SessionState
from backend.storage import Storage

logger = logging.getLogger(__name__)

Prompt = Callable[[str], str]


DRILL_HELP = "  [1-9] mark/unmark  n=next  p=prev  y=pinyin  s=pause/resume  f=finish"
RESULTS_HELP = "  [1-9] toggle  c=confirm  r=retry  t=re-test  e=re-test errors  enter=done"


def _unit(value: str) -> int | str:
    return int(value) if value.isdigit() else value


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def make_engine() -> SessionEngine:
    await ensure_db()
    return SessionEngine(Storage())


def render_cards(engine: SessionEngine) -> str:
    """Text for the current page: progress, timers and numbered cards."""
    s = engine.session
    if s is None:
        return ""
    snapshot = engine.tick()
    header = f"  [{engine.progress_text()}] {s.mode.value}"
    if snapshot is not None:
        header += f"  elapsed {snapshot.elapsed_text}"
        if snapshot.countdown is not None:
            header += f"  page {snapshot.countdown.text}"
    if s.state is SessionState.PAUSED:
        header += "  (paused)"

    lines = [header]
    for i, card in enumerate(engine.current_cards(), 1):
        mark = "✗" if card.marked_wrong else " "
        pinyin = f"  {card.pinyin}" if card.show_pinyin and card.pinyin else ""
        lines.append(f"    {i}. [{mark}] {card.word}{pinyin}")
    return "\n".join(lines)


def render_results(results: SessionResults) -> str:
    lines = [
        "\n  Session Complete!",
        f"  Words: {results.total_words}  Errors: {results.error_count}  Accuracy: {results.accuracy}%",
        f"  {results.comment}",
    ]
    if results.saved is False:
        lines.append("  Warning: results could not be saved. They will be retried on confirm.")
    return "\n".join(lines)


async def run_drill(engine: SessionEngine, prompt: Prompt = input) -> None:
    """Drive the active session until it finishes or the user quits."""
    while engine.state in (SessionState.ACTIVE, SessionState.PAUSED):
        print(render_cards(engine))
        command = prompt("  > ").strip().lower()
        s = engine.session

        if command.isdigit():
            cards = engine.current_cards()
            idx = int(command) - 1
            if 0 <= idx < len(cards):
                engine.toggle_mark(cards[idx].id)
        elif command in ("", "n"):
            await engine.next_group()
        elif command == "p":
            engine.prev_group()
        elif command == "y" and s is not None:
            if not await engine.set_show_pinyin(not s.show_pinyin):
                print("  Pinyin is locked off during a test.")
        elif command == "s":
            if engine.state is SessionState.PAUSED:
                engine.resume()
            else:
                engine.pause()
        elif command == "f":
            await engine.finish()
        else:
            print(DRILL_HELP)


async def run_results(engine: SessionEngine, prompt: Prompt = input) -> bool:
    """Results screen loop. Returns True if a new session was started."""
    while engine.state is SessionState.FINISHED:
        results = engine.results()
        print(render_results(results))
        s = engine.session
        words = [w for group in s.log.groups for w in group.words]
        for i, word in enumerate(words, 1):
            mark = "✗" if word.marked_wrong else " "
            print(f"    {i}. [{mark}] {word.word}  {word.pinyin}")

        command = prompt("  > ").strip().lower()
        if command.isdigit():
            idx = int(command) - 1
            if 0 <= idx < len(words):
                engine.toggle_result_mark(words[idx].id, not words[idx].marked_wrong)
        elif command == "c":
            await engine.confirm_results()
        elif command in ("r", "t", "e"):
            try:
                if command == "r":
                    await engine.retry()
                else:
                    await engine.retry_test(errors_only=command == "e")
            except EmptyWordSet as exc:
                print(f"  {exc}")
                continue
            return True
        elif command == "":
            if s.results_dirty or s.last_save_ok is False:
                await engine.confirm_results()
            return False
        else:
            print(RESULTS_HELP)
    return False


async def drive(engine: SessionEngine, prompt: Prompt = input) -> None:
    """Run drill and results screens until the user is done.

    Ctrl-C on the results screen still persists the results.
    """
    print(DRILL_HELP)
    while True:
        await run_drill(engine, prompt)
        try:
            again = await run_results(engine, prompt)
        except (KeyboardInterrupt, EOFError):
            await engine.auto_save()
            print("\n  Results saved.")
            return
        if not again:
            return


async def cmd_drill(args: argparse.Namespace, engine: SessionEngine | None = None) -> None:
    """Run an interactive drill session."""
    engine = engine or await make_engine()
    try:
        await engine.start_from_bank(
            parse_mode(args.mode),
            total=args.total,
            speed_per_word=args.speed,
            words_per_page=args.per_page,
            only_wrong=args.only_wrong,
        )
    except EmptyWordSet as exc:
        print(f"\n  {exc}. Add words with: python -m word_drill add WORD PINYIN")
        return
    await drive(engine)


async def cmd_review(args: argparse.Namespace, engine: SessionEngine | None = None) -> None:
    """Practice or test one word's current review stage."""
    engine = engine or await make_engine()
    try:
        await engine.start_review(args.word_id, test=args.test)
    except EmptyWordSet as exc:
        print(f"  {exc}")
        return
    await drive(engine)


async def cmd_add(args: argparse.Namespace, engine: SessionEngine | None = None) -> None:
    """Add a word to the bank."""
    engine = engine or await make_engine()
    bank_size = len(await engine.storage.get_word_bank())
    entry = await engine.storage.add_word(
        args.word, pinyin=args.pinyin, grade=args.grade, semester=args.semester, unit=args.unit
    )
    if entry is None:
        print("  Word must not be empty.")
    elif len(await engine.storage.get_word_bank()) == bank_size:
        print(f"  '{args.word}' already exists (id={entry.id}).")
    else:
        print(f"  Added {entry.word} {entry.pinyin} (id={entry.id})")


async def cmd_due(args: argparse.Namespace, engine: SessionEngine | None = None) -> None:
    """Show how many review tests are due."""
    engine = engine or await make_engine()
    due = await engine.scheduler.get_words_for_current_stage(due_only=True)
    practice = await engine.scheduler.get_words_for_current_stage()
    print(f"  {len(due)} review tests due, {len(practice)} words in review")


async def cmd_plans(args: argparse.Namespace, engine: SessionEngine | None = None) -> None:
    """List non-mastered plans by status."""
    engine = engine or await make_engine()
    buckets = await engine.scheduler.get_plans_by_status()
    for label, plans in (
        ("Overdue", buckets.overdue),
        ("Today", buckets.today),
        ("Upcoming", buckets.upcoming),
        ("Future", buckets.future),
    ):
        if not plans:
            continue
        print(f"\n  {label}")
        for plan in plans:
            stage = find_stage(plan, plan.current_stage)
            when = stage.scheduled_at.strftime("%Y-%m-%d %H:%M") if stage else "-"
            print(
                f"    {progress_visualization(plan)}  {plan.word:<8} stage {plan.current_stage}"
                f"  {when}  ({plan.word_id})"
            )
    if buckets.total == 0:
        print("  No words in review.")
    print()


async def cmd_stats(args: argparse.Namespace, engine: SessionEngine | None = None) -> None:
    """Show drill statistics."""
    engine = engine or await make_engine()
    bank = await engine.storage.get_word_bank()
    logs = await engine.storage.get_practice_logs()
    errors = await engine.storage.get_error_words()
    plans = await engine.scheduler.get_all_plans()

    print("\n  Word Drill Statistics")
    print(f"  {'Words in bank:':<20} {len(bank)}")
    print(f"  {'Sessions:':<20} {len(logs)}")
    print(f"  {'Error words:':<20} {len({r.word_id for r in errors})}")
    print(f"  {'In review:':<20} {sum(1 for p in plans if not p.mastered)}")
    print(f"  {'Mastered:':<20} {sum(1 for p in plans if p.mastered)}")
    print()


def main() -> None:
    """Entry point for the Word Drill CLI application."""
    parser = argparse.ArgumentParser(
        prog="word_drill",
        description="Timed word drills with spaced review of mistakes",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # drill
    drill_parser = subparsers.add_parser("drill", help="Start a timed drill session")
    drill_parser.add_argument(
        "-m",
        "--mode",
        default="practice",
        choices=["preview", "practice", "error-practice", "test"],
    )
    drill_parser.add_argument("-n", "--total", type=int, default=None, help="Words per session")
    drill_parser.add_argument("-s", "--speed", type=int, default=None, help="Seconds per word")
    drill_parser.add_argument("-p", "--per-page", type=int, default=None, help="Words per page")
    drill_parser.add_argument("--only-wrong", action="store_true", help="Only words in the error ledger")

    # add
    add_parser = subparsers.add_parser("add", help="Add a word to the bank")
    add_parser.add_argument("word", help="The word (characters)")
    add_parser.add_argument("pinyin", nargs="?", default="", help="Pinyin")
    add_parser.add_argument("-g", "--grade", default="")
    add_parser.add_argument("--semester", default="")
    add_parser.add_argument("-u", "--unit", type=_unit, default=1)

    # due
    subparsers.add_parser("due", help="Show reviews due")

    # plans
    subparsers.add_parser("plans", help="List review plans by status")

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # review
    review_parser = subparsers.add_parser("review", help="Review one word's current stage")
    review_parser.add_argument("word_id", help="Word id (see 'plans')")
    review_parser.add_argument("--test", action="store_true", help="Take the stage's test")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "drill": cmd_drill,
        "add": cmd_add,
        "due": cmd_due,
        "plans": cmd_plans,
        "stats": cmd_stats,
        "review": cmd_review,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
