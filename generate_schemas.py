import json
from peaux.project.config import DecoderConfig

decoderSchema = DecoderConfig.model_json_schema(by_alias=True, mode="validation")
decoderSchema["$schema"] = "http://json-schema.org/draft-07/schema#"

with open("peaux-schema.json", "wt", encoding="utf-8") as schema:
    schema.write(json.dumps(decoderSchema, indent=2))
