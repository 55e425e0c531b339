"""Drive the contact form from the command line."""
import logging
from pathlib import Path

from formstate import FormEngine, load_schema

logging.basicConfig(level=logging.INFO)


def main():
    schema = load_schema(Path(__file__).with_name("contact_form.yaml"))
    engine = FormEngine(schema, on_submit=lambda values: print("submitted:", values))

    print("mounted:", engine.mounted_fields())
    print("first attempt:", engine.submit().errors)

    engine.on_field_change("name", "Ada Lovelace")
    engine.on_field_change("email", "ada@example.com")
    engine.on_field_change("postalCode", "123456")
    engine.on_field_change("contactBy", ["email", "phone"])
    print("phone visible:", engine.get_field_props("phone").is_visible)
    engine.on_field_change("phone", "+65 6123 4567")

    print("submit enabled:", not engine.get_field_props("submit").disabled)
    engine.submit()


if __name__ == "__main__":
    main()
