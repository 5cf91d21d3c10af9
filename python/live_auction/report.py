"""Self-contained HTML report for an analytics run."""

import logging
from datetime import datetime, timezone
from html import escape
from pathlib import Path

from .models.types import AnalyticsReport
from .pseudonyms import pseudonym

logger = logging.getLogger(__name__)

STYLE = """
body { background: #0a0a0a; color: #e0e0e0; font-family: sans-serif; padding: 20px; }
.grid { display: grid; grid-template-columns: repeat(4, 1fr); gap: 15px; margin-bottom: 30px; }
.card { background: #1a1a1a; padding: 20px; border-radius: 8px; border: 1px solid #333; text-align: center; }
.val { font-size: 28px; font-weight: bold; color: #fff; }
.lbl { font-size: 11px; text-transform: uppercase; color: #888; margin-bottom: 5px; }
.highlight { color: #FF6600; }
.section { background: #1a1a1a; border: 1px solid #333; padding: 20px; border-radius: 8px; margin-bottom: 20px; }
h2 { font-size: 14px; text-transform: uppercase; color: #888; margin-top: 0; }
table { width: 100%; border-collapse: collapse; font-size: 13px; }
td, th { padding: 8px; text-align: left; border-bottom: 1px solid #333; }
th { color: #888; }
"""


def report_filename(room_id: str) -> str:
    return f"report_{room_id}.html"


def _fmt_time(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _card(label: str, value: str, highlight: bool = False) -> str:
    cls = "val highlight" if highlight else "val"
    return f'<div class="card"><div class="lbl">{escape(label)}</div><div class="{cls}">{escape(value)}</div></div>'


def render_report(report: AnalyticsReport, currency: str = "₹") -> str:
    """Render the report as a standalone HTML page."""
    cards = [
        _card("Revenue", f"{currency}{report.revenue:,}", highlight=True),
        _card("Real Users", str(report.real_user_count)),
        _card("Items Sold / Showcased", f"{report.items_sold} / {report.items_showcased}"),
        _card("Avg Viewers (Est)", str(report.avg_viewers)),
        _card("Total Bids", str(report.total_bids)),
        _card("Avg Price Increase", f"{report.avg_multiplier:.1f}x"),
        _card("Highest Multiplier", f"{report.highest_multiplier:.1f}x ({report.highest_multiplier_item})"),
        _card("Sales Conversion", f"{report.conversion_pct}%"),
    ]

    bidder_rows = "".join(
        f"<tr><td>{escape(pseudonym(b.name))}</td><td>{escape(b.name)}</td>"
        f'<td class="highlight">{currency}{b.total:,}</td></tr>'
        for b in report.top_bidders
    ) or '<tr><td colspan="3">No bids recorded</td></tr>'

    unsold_rows = "".join(
        f"<tr><td>{escape(u.name)}</td><td>{currency}{u.starting_price:,}</td></tr>"
        for u in report.unsold_items
    ) or '<tr><td colspan="2">All items sold!</td></tr>'

    bucket_rows = "".join(
        f"<tr><td>{escape(label)}</td><td>{bids}</td><td>{joins}</td></tr>"
        for label, bids, joins in zip(report.bucket_labels, report.bid_counts, report.join_counts)
    )

    room = escape(report.room_id)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>{room} Report</title>
<style>{STYLE}</style>
</head>
<body>
<h1 class="highlight">{room} <span style="color:#fff; font-size:16px">ANALYTICS</span></h1>
<p style="color:#666; font-size:12px">{_fmt_time(report.start_time)} to {_fmt_time(report.end_time)}</p>
<div class="grid">{"".join(cards)}</div>
<div class="section">
<h2>Bid Volume vs New Joins (5 min intervals)</h2>
<table><tr><th>Time (UTC)</th><th>Bids</th><th>New Joins</th></tr>{bucket_rows}</table>
</div>
<div class="section">
<h2>Top Bidders (Total Volume)</h2>
<table><tr><th>Bidder</th><th>User</th><th>Total Pledged</th></tr>{bidder_rows}</table>
</div>
<div class="section">
<h2>Unsold Items</h2>
<table><tr><th>Item</th><th>Start Price</th></tr>{unsold_rows}</table>
</div>
</body>
</html>
"""


def write_report(report: AnalyticsReport, output_dir: str = ".", currency: str = "₹") -> Path:
    """Write report_{room}.html into output_dir and return its path."""
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / report_filename(report.room_id)

    with open(path, "w", encoding="utf-8") as f:
        f.write(render_report(report, currency=currency))

    logger.info(f"Report written to {path}")
    return path
