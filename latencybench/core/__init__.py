"""
Benchmark core: timed probe, run orchestration and progress reporting.
"""
