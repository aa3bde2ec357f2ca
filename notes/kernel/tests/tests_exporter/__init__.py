"""
Notes Static Export Test Suite

Test Files:
1. test_exporter_pipeline.py - canonical JSON → HTML shell, embedding, fallback
2. test_exporter_transforms.py - per-kind transforms and their idempotence
"""
