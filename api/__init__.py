"""
FastAPI RESTful API for the Book Rental service.

This module provides a REST API for:
- Book catalog management and search
- User registration
- Issuing and returning books with rent calculation
- Rental history and rent reports
"""
