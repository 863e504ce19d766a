from .registry import DEFAULT_MODULES, ModuleInfo, ModuleRegistry

__all__ = ["DEFAULT_MODULES", "ModuleInfo", "ModuleRegistry"]
