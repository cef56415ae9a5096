"""
Application layer of the booking core.

Use cases orchestrate the domain rules against the ports.

Layout:
- use_cases/: one class per operation, plus the sweeps run by background workers
- dtos/: result objects returned by use cases
- interfaces/: ports implemented by the infrastructure layer
"""
