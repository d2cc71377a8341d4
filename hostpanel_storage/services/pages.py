"""Placeholder pages written over a project's entry file."""

from __future__ import annotations

import html

ARCHIVED_MARKER_TEXT = "This project is archived."

_MAINTENANCE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Maintenance Mode | {project}</title>
    <style>
        body {{ margin: 0; font-family: sans-serif; background-color: #030712; color: #fff;
               display: flex; justify-content: center; align-items: center; min-height: 100vh; }}
        .card {{ background: rgba(30, 41, 59, 0.4); border: 1px solid rgba(255, 255, 255, 0.1);
                 padding: 3rem; border-radius: 24px; text-align: center; max-width: 450px; }}
        p {{ color: #94a3b8; }}
    </style>
</head>
<body>
    <div class="card">
        <h1>System Update</h1>
        <p>We are currently updating our server. We will be back shortly.</p>
    </div>
</body>
</html>
"""

_ARCHIVED_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Site Unavailable | {brand}</title>
    <style>
        body {{ margin: 0; font-family: sans-serif; background-color: #020617; color: #fff;
               display: flex; justify-content: center; align-items: center; min-height: 100vh; }}
        p {{ color: #9ca3af; }}
        footer {{ font-size: 10px; color: #6b7280; text-transform: uppercase; }}
    </style>
</head>
<body>
    <main>
        <h1>Site Unavailable</h1>
        <p>The project you are looking for has been archived or removed by the owner.</p>
        <footer>Hosted by {brand}</footer>
    </main>
</body>
</html>
"""


def maintenance_page(project: str) -> str:
    return _MAINTENANCE_TEMPLATE.format(project=html.escape(project))


def archived_page(brand_name: str) -> str:
    return _ARCHIVED_TEMPLATE.format(brand=html.escape(brand_name))
