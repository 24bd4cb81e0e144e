"""Small school domain used to exercise scopes end to end."""
