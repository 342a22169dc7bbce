"""Minimal console session with the account plan assistant."""

from account_planner.api.service import export_account_plan, run_plan_chat

if __name__ == "__main__":
    question = "Research Eightfold.ai and create an account plan."
    out = run_plan_chat(question)
    print("User:", question)
    print("Assistant:", out["assistant_message"]["content"])
    for source in out["assistant_message"]["grounding_sources"] or []:
        print("  -", source["title"], source["uri"])
    if out["plan"]:
        for section in out["plan"]["sections"]:
            print(f"\n## {section['title']}\n{section['content']}")
        print("\nExported to", export_account_plan())
