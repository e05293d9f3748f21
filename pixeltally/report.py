"""
Dashboard data and HTML.

The dashboard only sees a ReportContext: today's hourly Stats, the daily
history (already including today) and optional caller-supplied extras.
"""

from datetime import timedelta
from typing import Dict, List, Tuple

from flask import render_template_string

from .collector import ReportContext
from .frame import Frame
from .stats import Stats

TOP_ROWS = 50


def column_totals(frame: Frame, days: int) -> List[int]:
    """Per-bucket sums over all rows for the last ``days`` buckets."""
    width = frame.width
    first = max(width - days, 0)
    return [sum(row.get(i) for row in frame) for i in range(first, width)]


def day_points(history: Stats, days: int) -> List[Tuple[str, int]]:
    """(YYYY-MM-DD, pageviews) for the last ``days`` days of history."""
    if history.start is None:
        return []
    totals = column_totals(history.paths, days)
    first = history.paths.width - len(totals)
    return [
        ((history.start + timedelta(days=first + i)).strftime("%Y-%m-%d"), count)
        for i, count in enumerate(totals)
    ]


# -----------------------------------------------------------------------------
# Sparkline builder (inline SVG chart)
# -----------------------------------------------------------------------------
def build_sparkline(points, width=320, height=60, stroke="#38bdf8"):
    """
    Tiny inline SVG sparkline.
    points: list[(day_string, views_int)], ascending by day.
    """
    if not points:
        svg = f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" ' \
              f'fill="none" stroke="{stroke}" stroke-width="2" stroke-linecap="round"></svg>'
        return {"svg": svg, "last_count": 0}

    counts = [p[1] for p in points]
    min_c = min(counts)
    span_c = max(counts) - min_c or 1

    n = len(points)
    if n == 1:
        xs = [width / 2]
    else:
        xs = [i * (width / (n - 1)) for i in range(n)]
    ys = [height - ((c - min_c) / span_c) * (height - 4) - 2 for c in counts]

    d_attr = " ".join(
        f"{'M' if i == 0 else 'L'}{x:.1f},{y:.1f}" for i, (x, y) in enumerate(zip(xs, ys))
    )
    svg = (
        f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" '
        f'fill="none" stroke="{stroke}" stroke-width="2" stroke-linecap="round">'
        f'<path d="{d_attr}" /></svg>'
    )
    return {"svg": svg, "last_count": counts[-1]}


def summarize(ctx: ReportContext, days: int = 30) -> Dict:
    """Flatten a ReportContext into the values the dashboard template shows."""
    daily, history = ctx.daily, ctx.history
    top_pages = history.paths.top(TOP_ROWS, last=days)
    top_countries = history.countries.top(TOP_ROWS, last=days)
    spark = build_sparkline(day_points(history, days))
    return {
        "days": days,
        "views_today": sum(row.total() for row in daily.paths),
        "sessions_today": sum(row.total() for row in daily.sessions),
        "total_views": sum(row.last(days) for row in history.paths),
        "total_sessions": sum(row.last(days) for row in history.sessions),
        "top_page": top_pages[0][0] if top_pages else "-",
        "top_country": top_countries[0][0] if top_countries else "-",
        "pages": top_pages,
        "referrers": history.referrers.top(TOP_ROWS, last=days),
        "countries": top_countries,
        "devices": history.devices.top(TOP_ROWS, last=days),
        "hourly": column_totals(daily.paths, 24),
        "spark_svg": spark["svg"],
        "spark_last": spark["last_count"],
        "extra": dict(ctx.extra),
    }


def render_dashboard(ctx: ReportContext, days: int = 30) -> str:
    """Render the dashboard page. Needs a Flask application context."""
    return render_template_string(DASHBOARD_HTML, **summarize(ctx, days))


DASHBOARD_HTML = """
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8"/>
<meta name="viewport" content="width=device-width,initial-scale=1"/>
<title>{{ extra.get("title", "Analytics") }}</title>
<style>
:root {
  --bg-main:#0f172a;
  --bg-card:#1e293b;
  --text-main:#f8fafc;
  --text-dim:#94a3b8;
  --border-card:#334155;
  --accent:#38bdf8;
  --radius-lg:1rem;
  --font:system-ui,-apple-system,BlinkMacSystemFont,"Segoe UI",Roboto,sans-serif;
}
*{box-sizing:border-box;margin:0;padding:0}
body{font-family:var(--font);background:var(--bg-main);color:var(--text-main);padding:2rem;line-height:1.4}
header{margin-bottom:2rem}
.title{font-size:1.2rem;font-weight:600}
.grid-cards{display:grid;grid-template-columns:repeat(auto-fit,minmax(180px,1fr));gap:1rem;margin-bottom:2rem}
.metric-card,.card{background:var(--bg-card);border-radius:var(--radius-lg);padding:1rem 1.25rem}
.metric-head{font-size:.7rem;color:var(--text-dim);margin-bottom:.5rem}
.metric-value{font-size:1.4rem;font-weight:600;word-break:break-word}
.sections{display:grid;gap:1.5rem;grid-template-columns:repeat(auto-fit,minmax(320px,1fr))}
.card-title{font-weight:600;margin-bottom:.75rem}
table{width:100%;border-collapse:collapse;font-size:.8rem}
td{border-bottom:1px solid var(--border-card);padding:.5rem .25rem;word-break:break-word}
td.num{text-align:right;font-variant-numeric:tabular-nums}
</style>
</head>
<body>

<header>
  <div class="title">{{ extra.get("title", "Analytics") }} · last {{ days }} days</div>
</header>

<section class="grid-cards">
  <div class="metric-card">
    <div class="metric-head">Pageviews ({{ days }}d)</div>
    <div class="metric-value">{{ total_views }}</div>
  </div>
  <div class="metric-card">
    <div class="metric-head">Sessions ({{ days }}d)</div>
    <div class="metric-value">{{ total_sessions }}</div>
  </div>
  <div class="metric-card">
    <div class="metric-head">Today</div>
    <div class="metric-value">{{ views_today }} / {{ sessions_today }}</div>
  </div>
  <div class="metric-card">
    <div class="metric-head">Top Page</div>
    <div class="metric-value">{{ top_page }}</div>
  </div>
  <div class="metric-card">
    <div class="metric-head">Top Country</div>
    <div class="metric-value">{{ top_country }}</div>
  </div>
  <div class="metric-card">
    {{ spark_svg | safe }}
    <div class="metric-head">Latest day: {{ spark_last }}</div>
  </div>
</section>

<section class="sections">
  {% for title, rows in [("Pages", pages), ("Referrers", referrers), ("Countries", countries), ("Devices", devices)] %}
  <div class="card">
    <div class="card-title">{{ title }}</div>
    <table>
      {% for name, count in rows %}
      <tr><td>{{ name }}</td><td class="num">{{ count }}</td></tr>
      {% endfor %}
    </table>
  </div>
  {% endfor %}
</section>

</body>
</html>
"""
