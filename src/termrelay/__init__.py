"""termrelay - Slack webhook relay that drives terminal sessions across hosts.

Button clicks and threaded replies on Slack notifications arrive here as
webhooks and are delivered as keystrokes to the addressed tmux pane, either
on this host or, when another host is better placed, by proxying the signed
request to that host's relay.

Package entry point. Exports the version string only; all functional
modules are imported lazily by main.py to keep startup fast.
"""

__version__ = "0.1.0"
