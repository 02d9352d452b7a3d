"""engine.config

Runtime configuration. Built from the environment for headless use; the
Streamlit app overrides the API key from st.secrets when present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

STORAGE_KEY = "soul_fruit_system_v1"


@dataclass(frozen=True)
class AppConfig:
    api_key: str = ""
    model: str = "gemini-2.5-flash"
    data_root: Path = Path(".soul_fruit")
    storage_key: str = STORAGE_KEY
    max_output_tokens: int = 4000
    base_seed: int = 42

    @property
    def storage_path(self) -> Path:
        return self.data_root / f"{self.storage_key}.json"

    def with_api_key(self, api_key: str) -> "AppConfig":
        return replace(self, api_key=str(api_key or ""))

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if env is None else env
        base = AppConfig()
        root = env.get("SOUL_FRUIT_DATA_ROOT")
        try:
            seed = int(env.get("SOUL_FRUIT_SEED", base.base_seed))
        except (TypeError, ValueError):
            seed = base.base_seed
        return AppConfig(
            api_key=env.get("GEMINI_API_KEY") or env.get("GOOGLE_API_KEY") or "",
            model=env.get("SOUL_FRUIT_MODEL") or base.model,
            data_root=Path(root).expanduser() if root else base.data_root,
            storage_key=env.get("SOUL_FRUIT_STORAGE_KEY") or base.storage_key,
            base_seed=seed,
        )
