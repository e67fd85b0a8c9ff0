# recipebook/__init__.py
