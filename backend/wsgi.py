from certflow import create_app

app = create_app()
