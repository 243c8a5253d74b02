"""
Domain Layer

Pure business rules of the file lifecycle, free of infrastructure.
"""
