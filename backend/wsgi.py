# Overview: WSGI entry point; set FLASK_APP=wsgi.py to use the Flask CLI.

from buildstock import create_app

app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
