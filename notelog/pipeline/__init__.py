# Note import pipeline internals.
# orchestrator -> file_processor -> reconciler -> store; see each module's docstring.
