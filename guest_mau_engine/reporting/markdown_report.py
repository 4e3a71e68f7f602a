"""
Markdown report: Human-readable estimate rendered via Jinja2.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..analysis.models import MauReport

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "mau_report.md.j2"


def _percent(value: float) -> str:
    return f"{value:.1%}"


def render_markdown(report: MauReport, run_id: str) -> str:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["percent"] = _percent
    template = env.get_template(TEMPLATE_NAME)
    return template.render(
        run_id=run_id,
        report=report,
        sign_in=report.sign_in.to_dict(),
        issues_by_category=report.issues_by_category(),
    )


def export_markdown(report: MauReport, output_dir: Path, run_id: str) -> Path:
    """Generate the Markdown report and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"guest_mau_report_{run_id}.md"
    with open(filepath, "w", encoding="utf-8") as fh:
        fh.write(render_markdown(report, run_id))
    return filepath
