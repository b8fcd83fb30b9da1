from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Template

from .utils import utc_now_iso

TEMPLATE_PATH = Path(__file__).resolve().parent.parent / "templates" / "report.html.j2"


def load_template(path: Path = TEMPLATE_PATH) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def render_report_html(report: Dict[str, Any], user_id: Optional[str] = None) -> str:
    """Render an ability report (build_ability_report output) as a standalone HTML page."""
    template = Template(load_template(), autoescape=True)
    return template.render(report=report, user_id=user_id, generated_at=utc_now_iso())
