"""
docgate CLI - Content Scan Command

Runs a local file through the input side of the gateway (sanitizer and
secret scanner) and reports what would be removed or redacted.  Exit code
1 means the file would be flagged or contains secrets.
"""

from __future__ import annotations

from pathlib import Path

import typer

from docgate.cli import app, console, load_cli_config
from docgate.cli.output import (
    print_error,
    print_json,
    print_success,
    print_table,
    print_warning,
    severity_markup,
)
from docgate.security import ContentSanitizer, SecretScanner


@app.command()
def scan(
    file: Path = typer.Argument(
        ...,
        help="File to scan.",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
    pii: bool = typer.Option(
        False,
        "--pii",
        help="Also scan for PII (emails, phone numbers, card numbers).",
    ),
    show_redacted: bool = typer.Option(
        False,
        "--show-redacted",
        help="Print the sanitized, redacted content.",
    ),
) -> None:
    """
    Scan a file for hidden text, prompt injection and secrets.
    """
    if not file.is_file():
        print_error(f"File not found: {file}")
        raise typer.Exit(1)

    config = load_cli_config()
    scanner_config = config.scanner.model_copy(update={"include_pii": pii or config.scanner.include_pii})
    sanitizer = ContentSanitizer(config.sanitizer)
    scanner = SecretScanner(scanner_config)

    text = file.read_text(encoding="utf-8", errors="replace")
    sanitized = sanitizer.sanitize(text)
    result = scanner.scan(sanitized.sanitized)
    flagged = sanitized.flagged or result.has_secrets

    if format == "json":
        print_json({
            "file": str(file),
            "sanitization": sanitized.to_dict(),
            "secrets": {**result.summary(), "findings": [f.to_dict() for f in result.secrets]},
        })
    else:
        console.print(f"Scanned [cyan]{file}[/cyan] ({len(text.encode('utf-8'))} bytes)")
        console.print()
        if sanitized.flagged:
            print_warning(f"Sanitization: {sanitized.reason}")
            for item in sanitized.removed:
                console.print(f"  * {item}", markup=False, highlight=False)
            console.print()
        if result.has_secrets:
            print_table(
                f"Secrets ({result.total_found})",
                ["Type", "Severity", "Offset", "Preview"],
                [
                    [f.type, severity_markup(f.severity.value), str(f.location), f.preview]
                    for f in result.secrets
                ],
                styles=["cyan", None, "dim", None],
            )
        if not flagged:
            print_success("No hidden text, injection patterns or secrets found")

    if show_redacted:
        console.print()
        console.print(result.redacted_content, markup=False, highlight=False)

    if flagged:
        raise typer.Exit(1)
