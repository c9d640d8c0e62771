# Import main lazily to avoid circular dependencies
def __getattr__(name):
    if name == "main":
        from paysettle.cli.main import main
        return main
    if name == "build_engine":
        from paysettle.container import build_engine
        return build_engine
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
