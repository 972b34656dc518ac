"""Cross-cutting helpers: logging, telemetry and metrics."""
