"""Interactive menu over the site workflows."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from wpstack.cleanup import cleanup_sites
from wpstack.compose import Compose
from wpstack.instance import iter_instance_dirs
from wpstack.sites import list_sites, show_ports, start_sites, stop_sites
from wpstack.utils import ask, echo
from wpstack.wordpress.installer import create_site, import_site

Prompt = Callable[[str], str]

CHOICES = (
    "Create new site",
    "List all sites",
    "Start all sites",
    "Stop all sites",
    "Clean up all sites",
    "Show port usage",
    "Quick site creation with auto port",
    "Import site from local files",
    "Exit",
)
EXIT_CHOICE = str(len(CHOICES))
DELETE_CONFIRMATION = "DELETE ALL"


def status_summary(root: Path) -> tuple[int, int]:
    """(running, total) instance counts."""
    dirs = list(iter_instance_dirs(root))
    running = sum(1 for path in dirs if Compose(path).is_running())
    return running, len(dirs)


def _ask_cleanup(root: Path, prompt: Prompt) -> bool:
    if not any(iter_instance_dirs(root)):
        return False
    echo("Existing sites found:")
    list_sites(root)
    return prompt("Clean up existing sites first? (y/n): ").lower().startswith("y")


def _required(prompt: Prompt, question: str, label: str) -> str | None:
    value = prompt(question)
    if not value:
        echo(f"Error: {label} cannot be empty")
        return None
    return value


def create_interactive(root: Path, prompt: Prompt = ask) -> bool:
    name = _required(prompt, "Enter site name (will become wp-test-SITENAME): ", "Site name")
    if name is None:
        return False
    return create_site(name, cleanup=_ask_cleanup(root, prompt), root=root)


def quick_create(root: Path, prompt: Prompt = ask) -> bool:
    name = _required(prompt, "Enter site name for quick creation: ", "Site name")
    if name is None:
        return False
    return create_site(name, root=root)


def import_interactive(root: Path, prompt: Prompt = ask) -> bool:
    name = _required(prompt, "Enter local site name (will become wp-test-SITENAME): ", "Site name")
    if name is None:
        return False
    db_file = _required(prompt, "Enter path to SQL database dump file: ", "Database file path")
    if db_file is None:
        return False
    wp_content = _required(prompt, "Enter path to wp-content directory: ", "wp-content path")
    if wp_content is None:
        return False
    port = prompt("Enter port (leave blank for auto-detect): ") or None
    cleanup = _ask_cleanup(root, prompt)
    return import_site(name, Path(db_file), Path(wp_content), port=port, cleanup=cleanup, root=root)


def cleanup_interactive(root: Path, prompt: Prompt = ask) -> bool:
    echo("WARNING: This will remove ALL WordPress sites and data!")
    if prompt(f"Are you absolutely sure? Type '{DELETE_CONFIRMATION}' to confirm: ") != DELETE_CONFIRMATION:
        echo("Cleanup cancelled")
        return True
    return cleanup_sites(root, force=True)


def dispatch(choice: str, root: Path, prompt: Prompt = ask) -> bool:
    actions = {
        "1": lambda: create_interactive(root, prompt),
        "2": lambda: list_sites(root),
        "3": lambda: start_sites(root),
        "4": lambda: stop_sites(root),
        "5": lambda: cleanup_interactive(root, prompt),
        "6": lambda: show_ports(root),
        "7": lambda: quick_create(root, prompt),
        "8": lambda: import_interactive(root, prompt),
    }
    action = actions.get(choice)
    if action is None:
        echo("Invalid choice. Please try again.")
        return False
    return action()


def run_menu(root: Path, prompt: Prompt = ask) -> int:
    echo("WordPress Docker Development Environment")
    echo("========================================")
    while True:
        running, total = status_summary(root)
        echo("")
        if total:
            echo(f"Current Status: {running} running, {total - running} stopped (Total: {total} sites)")
        else:
            echo("No WordPress sites found")
        echo("")
        echo("Choose an action:")
        for number, label in enumerate(CHOICES, start=1):
            echo(f"{number}) {label}")
        echo("")
        choice = prompt(f"Enter your choice (1-{EXIT_CHOICE}): ")
        if choice in (EXIT_CHOICE, ""):
            echo("Goodbye!")
            return 0
        dispatch(choice, root, prompt)
        echo("")
        prompt("Press Enter to continue...")
