"""Core module - store-neutral models, configuration, audit and logging.

Everything that talks to the remote entity store over the wire belongs in
/connectors/; reconciliation logic lives in /reconciliation/.
"""

__version__ = "1.0.0"
