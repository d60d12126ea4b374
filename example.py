"""Example usage of the autorefresh library."""

from pathlib import Path

from autorefresh import Schema, autorefresh_plugin

# Define document types using the DSL
types = """
Address {
    city: string,
}

Person {
    name: string,
    age: int,
    father: ref Person @autorefresh,
    mother: ref Person @autorefresh,
    relatives: ref Person[] @autorefresh(projection = [name]),
    address: Address,
}
"""

# Create a data directory for storage
data_dir = Path("./example_data")

with Schema.parse(types, data_dir) as schema:
    Person = schema.model("Person").plugin(autorefresh_plugin)

    print("Refresh plan:")
    for path, directive in Person.refresh_plan.items():
        print(f"  {path} -> {directive.collection} {dict(directive.options)}")

    father, mother, aunt, uncle = Person.insert_many([
        {"name": "Abel", "age": 61},
        {"name": "Beth", "age": 58},
        {"name": "Cora", "age": 55},
        {"name": "Dan", "age": 63},
    ])

    person = Person(
        name="Eve",
        age=30,
        father=father.id,
        mother=mother.id,
        relatives=[aunt.id, uncle.id],
        address={"city": "Lisbon"},
    )

    def saved(error, doc):
        if error is not None:
            print(f"Save failed: {error}")
            return
        print(f"\nSaved {doc.id} with references populated:")
        for key, value in doc.to_dict().items():
            print(f"  {key}: {value}")

    # Saving validates, and validation refreshes references first
    person.save(saved)

    print(f"\nFiles created in {data_dir}:")
    for f in sorted(data_dir.iterdir()):
        print(f"  {f.name} ({f.stat().st_size} bytes)")
