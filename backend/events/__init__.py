"""
Events app - immutable business event log.

Command layers call ``events.emitter.emit_event`` after every mutation;
the resulting rows back the tenant audit trail.
"""
