"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the data-access layer to the outside world (document backend,
local disk, configuration files, console) by implementing the interfaces
defined in the domain layer.
"""
