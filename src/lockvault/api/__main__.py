# src/lockvault/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from lockvault.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so LOCKVAULT_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from lockvault.api.app import create_app
    from lockvault.api.structured_logging import configure_structured_logging
    from lockvault.runtime.node_config import apply_node_config_to_env, load_node_config

    cfg = load_node_config()
    apply_node_config_to_env(cfg)
    configure_structured_logging()
    app = create_app()

    host = os.getenv("LOCKVAULT_API_HOST", cfg.api_host)
    port = int(os.getenv("LOCKVAULT_API_PORT", str(cfg.api_port)))

    uvicorn.run(app, host=host, port=port, log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
