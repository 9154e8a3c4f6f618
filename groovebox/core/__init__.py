from groovebox.core.config import settings, Settings

__all__ = ["settings", "Settings"]
