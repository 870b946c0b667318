"""recordstore: CRUD resources over a relational store."""
