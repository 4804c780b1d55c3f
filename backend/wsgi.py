from infopos import create_app

app = create_app()
