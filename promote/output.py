#!/usr/bin/env python
# Progress messages for the operator. Everything here goes to stdout, while
# diagnostics go through promote_logger on stderr.
from rich.console import Console
from rich.markup import escape

console = Console(highlight=False)


def title(text):
    """Print a formatted step title.

    Args:
        text: A string that is the body of the title.

    Returns:
        None
    """
    console.print(f"[bold]==> {escape(text)}[/bold]")


def alert(text):
    """Print a formatted alert, used when a run stops.

    Args:
        text: A string that is the body of the alert.

    Returns:
        None
    """
    console.print(f"[bold red]!!! {escape(text)}[/bold red]")


def done(text):
    console.print(f"[green]{escape(text)}[/green]")


def body(text):
    """Print a plain message.

    Args:
        text: A string that is the message to be printed.

    Returns:
        None
    """
    console.print(text, markup=False)
