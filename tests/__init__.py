"""
Tests for the QA run engine.

Test modules:
- test_models: Tests for domain models
- unit/test_coverage: Tests for coverage and pass rate math
- unit/test_result_edit_buffer: Tests for debounced result persistence
- unit/test_run_lifecycle: Tests for run creation, targets and closing
- unit/test_dashboard_aggregator: Tests for dashboard rollups
- unit/test_test_case_catalog: Tests for the test case catalog
- unit/test_engine_config: Tests for configuration loading
- unit/test_scheduling: Tests for debounce schedulers
- unit/test_metrics: Tests for metrics and structured logging
- integration/test_qa_api_integration: Tests for the QA API client, repositories and CLI
"""
