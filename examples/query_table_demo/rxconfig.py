"""Reflex configuration for the query table demo app."""

import reflex as rx

config = rx.Config(
    app_name="query_table_demo",
    plugins=[rx.plugins.SitemapPlugin()],
)
