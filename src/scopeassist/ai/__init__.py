"""Assistant runtime: tools, providers, transport and sessions.

Import from the submodules (``scopeassist.ai.tools``, ``scopeassist.ai.assistant``);
this package does not re-export them because the chat layer imports
``scopeassist.ai.tools`` while the session imports the chat layer.
"""
