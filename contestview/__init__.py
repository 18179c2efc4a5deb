# contestview/__init__.py
