import argparse
import json
import sys
import threading
import time
from typing import Optional

from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from api.factory import list_models
from config.config import Config
from db.gateway import StateGateway
from models.errors import PersistenceError, ProviderError
from models.search_models import EngineConfig, EngineKind, SearchResult, SearchSession, SessionStatus
from orchestrator.search_orchestrator import SearchOrchestrator
from orchestrator.session import SearchListener


def format_size(size_bytes: Optional[int]) -> str:
    if size_bytes is None:
        return "?"
    size = float(size_bytes)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if size < 1024 or unit == "TiB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size_bytes} B"


class ConsoleListener(SearchListener):
    """Prints search events as they arrive."""

    def __init__(self):
        self.count = 0

    def on_result(self, session: SearchSession, result: SearchResult) -> None:
        self.count += 1
        print(f"[{self.count:>3}] {result.title}  ({format_size(result.size_bytes)}, {result.engine_id})")
        print(f"      {result.magnet_link}")

    def on_provider_failed(self, session: SearchSession, engine_id: str, error: ProviderError) -> None:
        print(f"\033[93m! {engine_id} failed ({error.kind.value}): {error.message}\033[0m")

    def on_status_changed(self, session: SearchSession, status: SessionStatus) -> None:
        if status.is_terminal:
            print(f"\n=== Search {status.value}: {len(session.results)} results ===")


def show_loading_animation(stop_event: threading.Event, label: str = "Analyzing") -> None:
    """
    Show a loading animation in the console.

    Args:
        stop_event: A threading.Event that will be set to stop the animation
    """
    while not stop_event.is_set():
        for char in '|/-\\':
            if stop_event.is_set():
                break
            sys.stdout.write(f'\r\033[93m{label} {char}\033[0m')
            sys.stdout.flush()
            time.sleep(0.1)

    # Clear the loading line
    sys.stdout.write('\r' + ' ' * 30 + '\r')
    sys.stdout.flush()


def _print_analysis(session: SearchSession) -> None:
    print("\n=== Analysis ===")
    ranked = sorted(
        session.snapshot(),
        key=lambda r: r.analysis.purity_score if r.analysis else -1,
        reverse=True,
    )
    for result in ranked:
        if result.analysis is None:
            print(f"  --  {result.title}  [failed: {result.analysis_error or 'pending'}]")
            continue
        tags = ", ".join(sorted(result.analysis.tags))
        print(f"  {result.analysis.purity_score:>3}  {result.analysis.cleaned_title}  [{tags}]")


def cmd_search(args, gateway: StateGateway) -> int:
    orchestrator = SearchOrchestrator(gateway)
    try:
        listener = ConsoleListener()
        print(f"\n=== Searching '{args.keyword}' ({args.pages} page(s)) ===\n")
        try:
            session = orchestrator.run_search_sync(args.keyword, args.pages, listener)
        except KeyboardInterrupt:
            print("\nCancelled.")
            return 130

        for engine_id, error in session.failures.items():
            print(f"  failed: {engine_id} ({error.kind.value})")
        for engine_id, dropped in session.dropped_items.items():
            print(f"  dropped: {dropped} item(s) from {engine_id}")

        if args.analyze and session.results:
            stop_animation = threading.Event()
            loading_thread = threading.Thread(target=show_loading_animation, args=(stop_animation,))
            loading_thread.daemon = True
            loading_thread.start()
            try:
                report = orchestrator.analyze_sync(session=session)
            finally:
                stop_animation.set()
                loading_thread.join()
            _print_analysis(session)
            if report.failed:
                print(f"\n{len(report.failed)} item(s) could not be analyzed; run again to retry.")
        return 0
    finally:
        orchestrator.close()


def _parse_option(raw: str) -> tuple[str, object]:
    if "=" not in raw:
        raise ValueError(f"Option must look like key=value: {raw}")
    key, value = raw.split("=", 1)
    try:
        return key.strip(), json.loads(value)
    except json.JSONDecodeError:
        return key.strip(), value


def cmd_engines(args, gateway: StateGateway) -> int:
    if args.engines_command == "list":
        engines = gateway.load_config().engines
        if not engines:
            print("No engines configured.")
        for engine in engines:
            state = "on " if engine.enabled else "off"
            print(f"[{state}] {engine.id:<16} {engine.kind.value:<10} {engine.endpoint_template}")
        return 0

    if args.engines_command == "add":
        engine = EngineConfig(
            id=args.id,
            name=args.name or args.id,
            kind=EngineKind(args.kind),
            endpoint_template=args.endpoint_template,
            enabled=not args.disabled,
            options=dict(_parse_option(o) for o in args.option),
        )
        created = gateway.upsert_engine(engine)
        print(f"Engine {'added' if created else 'updated'}: {engine.id}")
        return 0

    if args.engines_command == "remove":
        changed = gateway.remove_engine(args.id)
    else:
        changed = gateway.set_engine_enabled(args.id, args.engines_command == "enable")
    if not changed:
        print(f"Error: unknown engine '{args.id}'")
        return 1
    print(f"Engine {args.engines_command}d: {args.id}")
    return 0


def cmd_settings(args, gateway: StateGateway) -> int:
    config = Config()
    stored = gateway.load_config()

    if args.settings_command == "models":
        if not config.validate(stored.ai.provider):
            return 1
        models = list_models(stored.ai.provider, config)
        if not models:
            print(f"No models listed for {stored.ai.provider}.")
        for model in models:
            marker = "*" if model == stored.ai.model else " "
            print(f" {marker} {model}")
        return 0

    print(json.dumps({"ai": stored.ai.to_dict(), "priority_keywords": list(stored.priority_keywords)}, indent=2))
    print(f"\nEnvironment default: {config.get_model_info()}")
    config.validate(stored.ai.provider)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MagnetCurator - aggregated magnet search")
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Search all enabled engines")
    search.add_argument("keyword")
    search.add_argument("--pages", type=int, default=1, help="Pages to fetch per engine")
    search.add_argument("--analyze", action="store_true", help="Run AI analysis on the results")

    engines = sub.add_parser("engines", help="Manage search engines")
    engines_sub = engines.add_subparsers(dest="engines_command", required=True)
    engines_sub.add_parser("list")
    add = engines_sub.add_parser("add", help="Add or update an engine")
    add.add_argument("id")
    add.add_argument("kind", choices=[k.value for k in EngineKind])
    add.add_argument("endpoint_template", help="URL with {keyword} and {page} placeholders")
    add.add_argument("--name")
    add.add_argument("--disabled", action="store_true")
    add.add_argument("--option", action="append", default=[], help="Provider option key=value")
    for name in ("remove", "enable", "disable"):
        engines_sub.add_parser(name).add_argument("id")

    settings = sub.add_parser("settings", help="Show stored settings")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    settings_sub.add_parser("show")
    settings_sub.add_parser("models", help="List models available to the stored AI provider")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    handlers = {"search": cmd_search, "engines": cmd_engines, "settings": cmd_settings}
    try:
        gateway = StateGateway()
        return handlers[args.command](args, gateway)
    except PersistenceError as e:
        print(f"Error: configuration store unavailable ({e.kind.value}): {e.message}")
        return 2
    except ValueError as e:
        print(f"Error: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
