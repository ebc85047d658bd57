"""
Frontend: where signatures come from (trace files, live tracing).
"""
