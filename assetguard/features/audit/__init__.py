"""
Audit logging feature module.

Pluggable sinks for permission-relevant mutations: buffered daily files or a
durable logs table, selected once at process start.
"""
