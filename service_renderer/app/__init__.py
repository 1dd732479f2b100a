"""
Render Service package for the Render Cache Proxy.

Given a target URL the service returns the fully rendered HTML of the
page, reusing a previously rendered copy while it is still fresh.

- app.main: API surface (/api/v1/html, /ping, /health, /metrics).
- app.pipeline: lookup -> render -> persist orchestration.
- app.caching: cache keys, freshness evaluation, entry model and stores.
- app.rendering: headless browser renderer (Playwright).
- app.notifications: best-effort failure notifications (Slack).

Guidelines:
- The service is stateless; the cache store is the only shared state.
- Staleness is judged at read time; the store never expires entries.
"""
