"""
Common library for reusable infrastructure components.

- database: Async MongoDB connection (Motor)
- auth: Password hashing (bcrypt), access tokens (JWT), FastAPI auth dependencies
- utils: Standard responses, exceptions, results, password validation
- config: Base settings class
"""
